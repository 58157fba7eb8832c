"""Moves the current-season pointer of a Show or Anime.

Every transition restarts the episode counter at the first episode of the
new season. There is no reliable signal for where a viewer picks up in a
different season, so no carried-over position is inferred.
"""
from typing import Optional

from shelftrack.errors import SeasonNavigationError
from shelftrack.schemas import MediaItem, Progress
from shelftrack.seasons import SeasonTable, position_of


def can_advance(item: MediaItem) -> bool:
    if not item.season_tracked:
        return False
    total_seasons = SeasonTable.from_info(item.season_info).known_seasons
    return total_seasons is None or item.season_info.current_season < total_seasons


def can_retreat(item: MediaItem) -> bool:
    return item.season_tracked and item.season_info.current_season > 1


def is_season_complete(item: MediaItem) -> bool:
    """Advisory only: the UI may offer to advance, nothing moves on its own."""
    if not item.season_tracked:
        return False
    position = position_of(item)
    return position.episode == position.episodes_in_season and can_advance(item)


def _place(item: MediaItem, season: int, episode: int) -> MediaItem:
    info = item.season_info
    table = SeasonTable.from_info(info)
    if 1 <= season <= len(table.counts):
        episodes_in_season = table.counts[season - 1]
    else:
        episodes_in_season = info.episodes_in_season
    season_name = info.season_name if season == info.current_season else f"Season {season}"
    season_info = info.model_copy(
        update={
            "current_season": season,
            "episodes_in_season": episodes_in_season,
            "season_name": season_name,
        }
    )
    table = SeasonTable.from_info(season_info)
    if episode < 1:
        # Nothing watched in this season yet.
        current = table.offset(season)
    else:
        current = table.to_absolute(season, min(episode, table.episode_count(season)))
    total = table.total_units() or item.progress.total
    if total is not None and total < current:
        # Past the end of what the catalog knew about.
        total = None
    return item.model_copy(
        update={"season_info": season_info, "progress": Progress(current=current, total=total)}
    )


def jump_to_season(item: MediaItem, season: int) -> MediaItem:
    if not item.season_tracked:
        raise SeasonNavigationError(f"Media item {item.id} is not tracked by season")
    known = SeasonTable.from_info(item.season_info).known_seasons
    if season < 1 or (known is not None and season > known):
        raise SeasonNavigationError(f"Season {season} is out of range for media item {item.id}")
    return _place(item, season, 1)


def advance(item: MediaItem) -> MediaItem:
    if not can_advance(item):
        raise SeasonNavigationError(f"Media item {item.id} is already on its last season")
    return _place(item, item.season_info.current_season + 1, 1)


def retreat(item: MediaItem) -> MediaItem:
    if not can_retreat(item):
        raise SeasonNavigationError(f"Media item {item.id} is already on its first season")
    return _place(item, item.season_info.current_season - 1, 1)


def follow_progress(item: MediaItem) -> MediaItem:
    """Move the season pointer to wherever the absolute counter now falls.

    A counter sitting on either boundary of the current season (episode 0 or
    the last episode) keeps the pointer where it is.
    """
    if not item.season_tracked:
        return item
    table = SeasonTable.from_info(item.season_info)
    season = item.season_info.current_season
    current = item.progress.current
    start = table.offset(season)
    if start <= current <= start + table.episode_count(season):
        return item
    position = table.from_absolute(current)
    return _place(item, position.season, position.episode)


def record_episode(item: MediaItem, episode: int, season: Optional[int] = None) -> MediaItem:
    """Store a season-relative entry ("episode 7 of season 3") as absolute progress."""
    if not item.season_tracked:
        progress = Progress(current=episode, total=item.progress.total)
        return item.model_copy(update={"progress": progress})
    season = season or item.season_info.current_season
    known = SeasonTable.from_info(item.season_info).known_seasons
    if known is not None:
        season = min(season, known)
    return _place(item, max(season, 1), episode)
