"""Display values derived from a MediaItem.

These functions run on every render and never raise: a missing total shows
as "?" and a missing or zero denominator gives 0 percent.
"""
import math
from typing import Optional

from shelftrack.navigator import can_advance, can_retreat, is_season_complete
from shelftrack.schemas import MediaItem, MediaKind, ProgressView, SeasonInfo
from shelftrack.seasons import SeasonTable, position_of

UNKNOWN_TOTAL = "?"


def _of(current: int, total: Optional[int]) -> str:
    return f"{current} of {total if total else UNKNOWN_TOTAL}"


def primary_text(item: MediaItem) -> str:
    current = item.progress.current
    total = item.progress.total
    if item.media_kind == MediaKind.BOOK:
        return f"Page {_of(current, total)}"
    if item.media_kind == MediaKind.MANGA:
        return f"Chapter {_of(current, total)}"
    if item.season_tracked:
        season, episode, episodes_in_season = position_of(item)
        return f"S{season}E{episode} of {episodes_in_season}"
    return f"Episode {_of(current, total)}"


def secondary_text(item: MediaItem) -> Optional[str]:
    if item.season_tracked:
        total_seasons = SeasonTable.from_info(item.season_info).known_seasons
        if total_seasons and total_seasons > 1:
            return f"Season {position_of(item).season} of {total_seasons}"
        return None
    if item.media_kind == MediaKind.MANGA:
        volumes = item.additional_progress.get("volumes")
        if volumes is not None and volumes.total:
            return f"Volume {volumes.current} of {volumes.total}"
    return None


def _round_half_up(value: float) -> float:
    return math.floor(value * 10 + 0.5) / 10


def percent_complete(item: MediaItem) -> float:
    """Completion of the whole work, never just the active season."""
    current = item.progress.current
    total = item.progress.total
    if item.season_tracked:
        total = SeasonTable.from_info(item.season_info).total_units() or total
    if not total or total <= 0:
        return 0.0
    percent = current * 100 / total
    return min(max(_round_half_up(percent), 0.0), 100.0)


def full_progress_text(item: MediaItem) -> str:
    primary = primary_text(item)
    secondary = secondary_text(item)
    if secondary:
        return f"{primary} {secondary}"
    return primary


def format_season_display(info: Optional[SeasonInfo]) -> str:
    if info is None or not info.current_season:
        return ""
    parts = [info.season_name or f"Season {info.current_season}"]
    if info.total_seasons and info.total_seasons > 1:
        parts.append(f"({info.current_season}/{info.total_seasons})")
    if info.season_year:
        parts.append(f"({info.season_year})")
    return " ".join(parts)


def progress_view(item: MediaItem) -> ProgressView:
    return ProgressView(
        primary=primary_text(item),
        secondary=secondary_text(item),
        percent=percent_complete(item),
        season_complete=is_season_complete(item),
        can_advance=can_advance(item),
        can_retreat=can_retreat(item),
    )
