"""
Tests for OptimisticMutator apply/commit/rollback behaviour.
"""

import asyncio
from datetime import datetime, timezone

import pytest

from shelftrack.errors import ItemNotFoundError, NotAuthenticatedError, RemoteStoreError
from shelftrack.mutator import MediaStore, OptimisticMutator
from shelftrack.schemas import (
    MediaItemCreate,
    MediaItemUpdate,
    MediaKind,
    MediaStatus,
    Progress,
    SeasonInfo,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def setup(make_item, fake_repository_class):
    def _setup(items=(), owner_id="owner-1", repository=None):
        repository = repository or fake_repository_class(items)
        store = MediaStore(owner_id, items)
        ids = iter(f"local-{n}" for n in range(100))
        mutator = OptimisticMutator(store, repository, clock=lambda: NOW, id_factory=lambda: next(ids))
        return mutator, store, repository

    return _setup


@pytest.mark.asyncio
async def test_add_item_appends_and_persists(setup):
    mutator, store, repository = setup()
    item = await mutator.add_item(MediaItemCreate(name="Dune", media_kind=MediaKind.BOOK, total_progress=600))

    assert item.id == "local-0"
    assert item.status == MediaStatus.IN_PROGRESS
    assert item.progress == Progress(current=0, total=600)
    assert item.date_added == NOW
    assert store.items == (item,)
    assert repository.writes() == [("create", "local-0")]


@pytest.mark.asyncio
async def test_add_item_takes_server_assigned_id(setup):
    mutator, store, repository = setup()
    repository.assign_id = "server-7"
    item = await mutator.add_item(MediaItemCreate(media_kind=MediaKind.MANGA))

    assert item.id == "server-7"
    assert [entry.id for entry in store.items] == ["server-7"]


@pytest.mark.asyncio
async def test_add_item_failure_removes_placeholder(setup, make_item):
    existing = make_item(id="a")
    mutator, store, repository = setup([existing])
    repository.fail_with = RemoteStoreError("store unavailable")

    with pytest.raises(RemoteStoreError):
        await mutator.add_item(MediaItemCreate(media_kind=MediaKind.BOOK))

    assert store.items == (existing,)


@pytest.mark.asyncio
async def test_unexpected_transport_error_is_retryable(setup):
    mutator, store, repository = setup()
    repository.fail_with = ConnectionError("reset by peer")

    with pytest.raises(RemoteStoreError) as excinfo:
        await mutator.add_item(MediaItemCreate(media_kind=MediaKind.BOOK))

    assert excinfo.value.retryable is True
    assert store.items == ()


@pytest.mark.asyncio
async def test_add_show_seeded_from_selected_season(setup):
    mutator, store, repository = setup()
    info = SeasonInfo(current_season=3, total_seasons=8, episodes_in_season=10)

    seeded = await mutator.add_item(MediaItemCreate(media_kind=MediaKind.SHOW, season_info=info))
    assert seeded.progress == Progress(current=21, total=80)

    entered = await mutator.add_item(
        MediaItemCreate(media_kind=MediaKind.SHOW, season_info=info, current_progress=7, total_progress=10)
    )
    assert entered.progress == Progress(current=27, total=80)


@pytest.mark.asyncio
async def test_update_item_commits_server_canonical_item(setup, make_item):
    mutator, store, repository = setup([make_item(id="a", name="Old")])
    repository.canonicalize = lambda item: item.model_copy(update={"name": item.name.upper()})

    updated = await mutator.update_item("a", MediaItemUpdate(name="New"))

    assert updated.name == "NEW"
    assert store.get("a").name == "NEW"


@pytest.mark.asyncio
async def test_update_item_failure_restores_snapshot(setup, make_item):
    items = [make_item(id="a"), make_item(id="b", progress=Progress(current=3, total=9))]
    mutator, store, repository = setup(items)
    before = store.snapshot()
    repository.fail_with = RemoteStoreError("store unavailable")

    with pytest.raises(RemoteStoreError):
        await mutator.update_item("b", MediaItemUpdate(progress=Progress(current=9, total=9)))

    assert store.snapshot() == before


@pytest.mark.asyncio
async def test_update_item_not_found_remotely_resyncs(setup, make_item, fake_repository_class):
    stale = make_item(id="gone")
    survivor = make_item(id="kept")
    repository = fake_repository_class([survivor])
    mutator, store, _ = setup([stale, survivor], repository=repository)

    with pytest.raises(ItemNotFoundError) as excinfo:
        await mutator.update_item("gone", MediaItemUpdate(name="Renamed"))

    assert excinfo.value.resync_required is True
    assert ("list", "owner-1") in repository.calls
    assert [item.id for item in store.items] == ["kept"]


@pytest.mark.asyncio
async def test_update_status_sets_and_clears_date_paused(setup, make_item):
    mutator, store, repository = setup([make_item(id="a")])

    paused = await mutator.update_status("a", MediaStatus.PAUSED)
    assert paused.status == MediaStatus.PAUSED
    assert paused.date_paused == NOW

    resumed = await mutator.update_status("a", MediaStatus.COMPLETED)
    assert resumed.date_paused is None
    assert store.get("a").date_paused is None


@pytest.mark.asyncio
async def test_update_status_missing_locally_never_writes(setup, make_item):
    mutator, store, repository = setup([make_item(id="a")])

    with pytest.raises(ItemNotFoundError):
        await mutator.update_status("missing", MediaStatus.PAUSED)

    assert repository.writes() == []
    assert ("list", "owner-1") in repository.calls


@pytest.mark.asyncio
async def test_delete_failure_reinserts_at_prior_position(setup, make_item):
    items = [make_item(id="a"), make_item(id="b"), make_item(id="c")]
    mutator, store, repository = setup(items)
    repository.fail_with = RemoteStoreError("store unavailable")

    with pytest.raises(RemoteStoreError):
        await mutator.delete_item("b")

    assert [item.id for item in store.items] == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_delete_item(setup, make_item):
    mutator, store, repository = setup([make_item(id="a"), make_item(id="b")])
    await mutator.delete_item("a")
    assert [item.id for item in store.items] == ["b"]
    assert "a" not in repository.items


@pytest.mark.asyncio
async def test_mutations_without_owner_are_rejected_locally(setup, make_item):
    mutator, store, repository = setup([make_item(id="a")], owner_id=None)

    with pytest.raises(NotAuthenticatedError):
        await mutator.add_item(MediaItemCreate(media_kind=MediaKind.BOOK))
    with pytest.raises(NotAuthenticatedError):
        await mutator.update_status("a", MediaStatus.PAUSED)

    assert repository.calls == []
    assert len(store) == 1


@pytest.mark.asyncio
async def test_failure_of_one_item_keeps_concurrent_change_of_another(setup, make_item, fake_repository_class):
    class SelectiveRepository(fake_repository_class):
        async def replace(self, item_id, item):
            await asyncio.sleep(0)
            if item_id == "b":
                raise RemoteStoreError("store unavailable")
            return await super().replace(item_id, item)

    items = [make_item(id="a", name="A"), make_item(id="b", name="B")]
    mutator, store, _ = setup(items, repository=SelectiveRepository(items))

    results = await asyncio.gather(
        mutator.update_item("a", MediaItemUpdate(name="A2")),
        mutator.update_item("b", MediaItemUpdate(name="B2")),
        return_exceptions=True,
    )

    assert results[0].name == "A2"
    assert isinstance(results[1], RemoteStoreError)
    assert [item.name for item in store.items] == ["A2", "B"]


@pytest.mark.asyncio
async def test_editing_season_table_remaps_progress(setup, make_item):
    show = make_item(
        id="s",
        media_kind=MediaKind.SHOW,
        progress=Progress(current=15, total=30),
        season_info=SeasonInfo(current_season=2, total_seasons=3, episodes_in_season=10),
    )
    mutator, store, repository = setup([show])

    updated = await mutator.update_item(
        "s", MediaItemUpdate(season_info=SeasonInfo(current_season=2, season_episodes=[12, 6, 6]))
    )

    assert updated.progress == Progress(current=17, total=24)


@pytest.mark.asyncio
async def test_season_navigation_and_episode_entry(setup, make_item):
    show = make_item(
        id="s",
        media_kind=MediaKind.SHOW,
        progress=Progress(current=27, total=80),
        season_info=SeasonInfo(current_season=3, total_seasons=8, episodes_in_season=10),
    )
    mutator, store, repository = setup([show])

    advanced = await mutator.advance_season("s")
    assert advanced.season_info.current_season == 4
    assert repository.items["s"].progress.current == 31

    entered = await mutator.update_item("s", MediaItemUpdate(episode_in_season=5))
    assert entered.progress.current == 35

    retreated = await mutator.retreat_season("s")
    assert retreated.season_info.current_season == 3
    assert store.get("s").progress.current == 21


@pytest.mark.asyncio
async def test_refresh_replaces_collection(setup, make_item, fake_repository_class):
    remote = [make_item(id="x"), make_item(id="y", owner_id="someone-else")]
    mutator, store, _ = setup([make_item(id="a")], repository=fake_repository_class(remote))

    items = await mutator.refresh()

    assert [item.id for item in items] == ["x"]


@pytest.mark.asyncio
async def test_progress_edit_across_seasons_moves_pointer(setup, make_item):
    show = make_item(
        id="s",
        media_kind=MediaKind.SHOW,
        progress=Progress(current=27, total=80),
        season_info=SeasonInfo(current_season=3, total_seasons=8, episodes_in_season=10),
    )
    mutator, store, repository = setup([show])

    edited = await mutator.update_item("s", MediaItemUpdate(progress=Progress(current=40, total=80)))
    assert edited.season_info.current_season == 4
    assert repository.items["s"].season_info.current_season == 4

    advanced = await mutator.advance_season("s")
    assert advanced.season_info.current_season == 5
    assert advanced.progress.current == 41
