"""Conversion between season-relative and absolute progress.

Progress for Shows and Anime is stored as one absolute counter: the number
of episodes consumed across every earlier season plus the current one.
A ``SeasonTable`` turns that counter into "episode K of season S" and back.

When a show has no per-season episode table, every season (including
seasons never visited) is assumed to have ``episodes_in_season`` episodes.
This is an approximation, not catalog data: shows with uneven season
lengths will be placed in the wrong season by it. A season count that is
missing falls back to ``DEFAULT_EPISODES_PER_SEASON``; a zero or negative
count is treated as 1.
"""
from __future__ import annotations

from dataclasses import dataclass
import os
from typing import NamedTuple, Optional, Sequence, Union

from shelftrack.schemas import MediaItem, Progress, SeasonInfo

DEFAULT_EPISODES_PER_SEASON = int(os.getenv("SHELFTRACK_DEFAULT_EPISODES", "12"))


def sanitize_count(value: int | None, fallback: int | None = None) -> int:
    if value is None:
        value = fallback if fallback is not None else DEFAULT_EPISODES_PER_SEASON
    return value if value >= 1 else 1


class SeasonPosition(NamedTuple):
    season: int
    episode: int
    episodes_in_season: int


@dataclass(frozen=True)
class SeasonTable:
    counts: tuple[int, ...] = ()
    episodes_in_season: Optional[int] = None
    total_seasons: Optional[int] = None

    @classmethod
    def from_info(cls, info: SeasonInfo | None) -> "SeasonTable":
        if info is None:
            return cls()
        return cls(
            counts=tuple(info.season_episodes or ()),
            episodes_in_season=info.episodes_in_season,
            total_seasons=info.total_seasons,
        )

    @property
    def uniform(self) -> int:
        return sanitize_count(self.episodes_in_season)

    @property
    def known_seasons(self) -> Optional[int]:
        if self.counts:
            return len(self.counts)
        return self.total_seasons

    def episode_count(self, season: int) -> int:
        if 1 <= season <= len(self.counts):
            return sanitize_count(self.counts[season - 1])
        return self.uniform

    def offset(self, season: int) -> int:
        """Episodes in all seasons before ``season``."""
        return sum(self.episode_count(index) for index in range(1, max(season, 1)))

    def to_absolute(self, season: int, episode: int) -> int:
        season = max(int(season), 1)
        episode = max(int(episode), 1)
        return self.offset(season) + episode

    def from_absolute(self, absolute: int) -> SeasonPosition:
        absolute = int(absolute)
        if absolute < 1:
            return SeasonPosition(1, 0, self.episode_count(1))

        if self.counts:
            remaining = absolute
            for season in range(1, len(self.counts) + 1):
                count = self.episode_count(season)
                if remaining <= count:
                    return SeasonPosition(season, remaining, count)
                remaining -= count
            final = len(self.counts)
            return SeasonPosition(final, self.episode_count(final), self.episode_count(final))

        per_season = self.uniform
        season = (absolute - 1) // per_season + 1
        if self.total_seasons is not None and season > self.total_seasons:
            return SeasonPosition(self.total_seasons, per_season, per_season)
        return SeasonPosition(season, (absolute - 1) % per_season + 1, per_season)

    def total_units(self) -> Optional[int]:
        if self.counts:
            return sum(self.episode_count(season) for season in range(1, len(self.counts) + 1))
        if self.total_seasons is not None:
            return self.total_seasons * self.uniform
        return None


def to_absolute(
    season: int,
    episode: int,
    counts: Sequence[int] | None = None,
    episodes_in_season: int | None = None,
) -> int:
    return SeasonTable(tuple(counts or ()), episodes_in_season).to_absolute(season, episode)


def from_absolute(
    absolute: int,
    counts: Sequence[int] | None = None,
    episodes_in_season: int | None = None,
    total_seasons: int | None = None,
) -> SeasonPosition:
    table = SeasonTable(tuple(counts or ()), episodes_in_season, total_seasons)
    return table.from_absolute(absolute)


def total_units(
    counts: Sequence[int] | None = None,
    total_seasons: int | None = None,
    episodes_in_season: int | None = None,
) -> Optional[int]:
    return SeasonTable(tuple(counts or ()), episodes_in_season, total_seasons).total_units()


def position_of(item: MediaItem) -> SeasonPosition:
    table = SeasonTable.from_info(item.season_info)
    return table.from_absolute(item.progress.current)


@dataclass(frozen=True)
class RelativeToSeason:
    season: int
    episode: int


@dataclass(frozen=True)
class AbsoluteAcrossShow:
    absolute: int


SeasonProgress = Union[RelativeToSeason, AbsoluteAcrossShow]


def classify_progress(progress: Progress, info: SeasonInfo | None) -> SeasonProgress:
    """Work out which representation an unmarked stored progress uses.

    Older records counted episodes inside the selected season only, with a
    total equal to that season's length. A total that covers a single season
    of a longer show, or a counter that does not reach the selected season,
    marks the record as season-relative.
    """
    if info is None or info.current_season is None or info.current_season == 1:
        return AbsoluteAcrossShow(progress.current)

    table = SeasonTable.from_info(info)
    season = info.current_season
    whole = table.total_units()
    if progress.total is not None:
        single_season = progress.total <= table.episode_count(season)
        if single_season and (whole is None or whole > progress.total):
            return RelativeToSeason(season, progress.current)
        return AbsoluteAcrossShow(progress.current)
    if progress.current <= table.offset(season):
        return RelativeToSeason(season, progress.current)
    return AbsoluteAcrossShow(progress.current)


def normalize_progress(progress: SeasonProgress, table: SeasonTable) -> AbsoluteAcrossShow:
    if isinstance(progress, AbsoluteAcrossShow):
        return progress
    episode = min(progress.episode, table.episode_count(progress.season))
    return AbsoluteAcrossShow(table.to_absolute(progress.season, episode))


def remap_progress(absolute: int, old: SeasonTable, new: SeasonTable) -> int:
    """Re-express absolute progress after the per-season table changes.

    The position is read against the old table and written back against the
    new one, so the user stays on the same season and episode.
    """
    if absolute < 1:
        return absolute
    position = old.from_absolute(absolute)
    known = new.known_seasons
    if known is not None and position.season > known:
        return new.total_units() or absolute
    episode = min(position.episode, new.episode_count(position.season))
    return new.to_absolute(position.season, episode)
