"""Optimistic mutations of a client-held media collection.

Every operation follows the same contract: the local ``MediaStore`` is
changed first, the remote write is awaited, and the change is then either
committed (the store's canonical answer wins) or rolled back to the entry
as it was before the call. All local work happens between awaits, so no
other mutation can observe a half-applied change.

Mutations of different items do not wait for each other. A second mutation
of the same item before the first settles is not prevented either; the last
remote write wins, and callers that need batching must coalesce themselves.
"""
from datetime import datetime, timezone
import logging
from typing import Callable, List, Optional, Protocol
import uuid

from shelftrack import navigator
from shelftrack.errors import (
    ItemNotFoundError,
    NotAuthenticatedError,
    RemoteStoreError,
    TrackerError,
)
from shelftrack.schemas import (
    MediaItem,
    MediaItemCreate,
    MediaItemUpdate,
    MediaStatus,
    Progress,
)
from shelftrack.seasons import SeasonTable, remap_progress

logger = logging.getLogger(__name__)


class MediaRepository(Protocol):
    async def list(self, owner_id: str) -> List[MediaItem]:
        ...

    async def create(self, item: MediaItem) -> str:
        ...

    async def replace(self, item_id: str, item: MediaItem) -> MediaItem:
        ...

    async def delete(self, item_id: str) -> None:
        ...


class MediaStore:
    """The collection held for one owner.

    Read it through ``items``, ``get`` and ``index_of``. The writing methods
    belong to ``OptimisticMutator``; changing the store from anywhere else
    breaks rollback.
    """

    def __init__(self, owner_id: Optional[str] = None, items=()) -> None:
        self.owner_id = owner_id
        self._items: List[MediaItem] = list(items)

    def __len__(self) -> int:
        return len(self._items)

    @property
    def items(self) -> tuple:
        return tuple(self._items)

    def get(self, item_id: str) -> Optional[MediaItem]:
        index = self.index_of(item_id)
        return None if index is None else self._items[index]

    def index_of(self, item_id: str) -> Optional[int]:
        for index, item in enumerate(self._items):
            if item.id == item_id:
                return index
        return None

    def snapshot(self) -> tuple:
        return tuple(item.model_copy(deep=True) for item in self._items)

    def insert(self, index: int, item: MediaItem) -> None:
        self._items.insert(min(index, len(self._items)), item)

    def remove(self, item_id: str) -> Optional[int]:
        index = self.index_of(item_id)
        if index is not None:
            del self._items[index]
        return index

    def swap(self, item_id: str, item: MediaItem) -> bool:
        index = self.index_of(item_id)
        if index is None:
            return False
        self._items[index] = item
        return True

    def reset(self, items) -> None:
        self._items = list(items)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def with_status(item: MediaItem, status: MediaStatus, now: datetime) -> MediaItem:
    date_paused = item.date_paused
    if status == MediaStatus.PAUSED:
        if item.status != MediaStatus.PAUSED:
            date_paused = now
    else:
        date_paused = None
    return item.model_copy(update={"status": status, "date_paused": date_paused})


def apply_patch(item: MediaItem, patch: MediaItemUpdate, now: datetime) -> MediaItem:
    changes = patch.model_dump(exclude_unset=True, exclude={"episode_in_season", "status"})
    merged = item.model_dump()
    merged.update(changes)
    updated = MediaItem.model_validate(merged)

    if patch.status is not None:
        updated = with_status(updated.model_copy(update={"status": item.status}), patch.status, now)

    if updated.season_tracked:
        new_table = SeasonTable.from_info(updated.season_info)
        current = updated.progress.current
        if "season_info" in changes and "progress" not in changes and item.season_tracked:
            old_table = SeasonTable.from_info(item.season_info)
            if old_table != new_table:
                current = remap_progress(current, old_table, new_table)
        total = new_table.total_units() or updated.progress.total
        updated = updated.model_copy(update={"progress": Progress(current=current, total=total)})
        if "progress" in changes or "season_info" in changes:
            updated = navigator.follow_progress(updated)

    if patch.episode_in_season is not None:
        updated = navigator.record_episode(updated, patch.episode_in_season)
    return updated


class OptimisticMutator:
    def __init__(
        self,
        store: MediaStore,
        repository: MediaRepository,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self.store = store
        self.repository = repository
        self._clock = clock
        self._new_id = id_factory or (lambda: uuid.uuid4().hex)

    def _require_owner(self) -> str:
        if not self.store.owner_id:
            raise NotAuthenticatedError()
        return self.store.owner_id

    async def _remote(self, call, *args):
        try:
            return await call(*args)
        except TrackerError:
            raise
        except Exception as exc:
            raise RemoteStoreError(f"Remote store call failed: {exc}") from exc

    async def refresh(self) -> tuple:
        owner_id = self._require_owner()
        items = await self._remote(self.repository.list, owner_id)
        self.store.reset(items)
        logger.info("Resynchronized %s media items for %s.", len(items), owner_id)
        return self.store.items

    async def _resync_quietly(self) -> None:
        try:
            await self.refresh()
        except TrackerError:
            logger.exception("Resynchronization after a stale mutation failed.")

    async def _stale(self, item_id: str):
        logger.warning("Media item %s is not in the local collection, resynchronizing.", item_id)
        await self._resync_quietly()
        raise ItemNotFoundError(item_id)

    def _rollback(self, before: MediaItem, index: Optional[int]) -> None:
        if not self.store.swap(before.id, before):
            self.store.insert(index if index is not None else len(self.store), before)
        logger.info("Rolled back media item %s.", before.id)

    def build_item(self, data: MediaItemCreate) -> MediaItem:
        item = MediaItem(
            id=self._new_id(),
            owner_id=self._require_owner(),
            name=data.name,
            media_kind=data.media_kind,
            status=MediaStatus.IN_PROGRESS,
            cover_art_url=data.cover_art_url,
            progress=Progress(current=data.current_progress or 0, total=data.total_progress),
            season_info=data.season_info,
            additional_progress=data.additional_progress,
            external=data.external,
            date_added=self._clock(),
        )
        if not item.season_tracked:
            return item
        # Entered progress counts episodes inside the selected season.
        if data.current_progress:
            return navigator.record_episode(item, data.current_progress)
        season = item.season_info.current_season
        if season > 1:
            return navigator.jump_to_season(item, season)
        total = SeasonTable.from_info(item.season_info).total_units()
        return item.model_copy(update={"progress": Progress(current=0, total=total)})

    async def add_item(self, data: MediaItemCreate) -> MediaItem:
        item = self.build_item(data)
        self.store.insert(len(self.store), item)
        try:
            assigned_id = await self._remote(self.repository.create, item)
        except TrackerError:
            self.store.remove(item.id)
            logger.warning("Adding media item %s failed, placeholder removed.", item.id)
            raise
        if assigned_id and assigned_id != item.id:
            confirmed = item.model_copy(update={"id": assigned_id})
            self.store.swap(item.id, confirmed)
            return confirmed
        return item

    async def _replace(self, previous: MediaItem, updated: MediaItem) -> MediaItem:
        index = self.store.index_of(previous.id)
        before = previous.model_copy(deep=True)
        self.store.swap(previous.id, updated)
        try:
            canonical = await self._remote(self.repository.replace, updated.id, updated)
        except ItemNotFoundError:
            self._rollback(before, index)
            await self._resync_quietly()
            raise
        except TrackerError:
            self._rollback(before, index)
            raise
        self.store.swap(updated.id, canonical)
        return canonical

    def _current(self, item_id: str) -> Optional[MediaItem]:
        self._require_owner()
        return self.store.get(item_id)

    async def update_item(self, item_id: str, patch: MediaItemUpdate) -> MediaItem:
        current = self._current(item_id)
        if current is None:
            await self._stale(item_id)
        return await self._replace(current, apply_patch(current, patch, self._clock()))

    async def update_status(self, item_id: str, status: MediaStatus) -> MediaItem:
        current = self._current(item_id)
        if current is None:
            await self._stale(item_id)
        return await self._replace(current, with_status(current, status, self._clock()))

    async def advance_season(self, item_id: str) -> MediaItem:
        current = self._current(item_id)
        if current is None:
            await self._stale(item_id)
        return await self._replace(current, navigator.advance(current))

    async def retreat_season(self, item_id: str) -> MediaItem:
        current = self._current(item_id)
        if current is None:
            await self._stale(item_id)
        return await self._replace(current, navigator.retreat(current))

    async def record_episode(
        self, item_id: str, episode: int, season: Optional[int] = None
    ) -> MediaItem:
        current = self._current(item_id)
        if current is None:
            await self._stale(item_id)
        return await self._replace(current, navigator.record_episode(current, episode, season))

    async def delete_item(self, item_id: str) -> None:
        current = self._current(item_id)
        if current is None:
            await self._stale(item_id)
        before = current.model_copy(deep=True)
        index = self.store.remove(item_id)
        try:
            await self._remote(self.repository.delete, item_id)
        except ItemNotFoundError:
            self.store.insert(index, before)
            await self._resync_quietly()
            raise
        except TrackerError:
            self.store.insert(index, before)
            logger.warning("Deleting media item %s failed, restored.", item_id)
            raise
