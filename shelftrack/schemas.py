from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class MediaKind(str, Enum):
    BOOK = "Book"
    SHOW = "Show"
    ANIME = "Anime"
    MANGA = "Manga"


class MediaStatus(str, Enum):
    IN_PROGRESS = "InProgress"
    PAUSED = "Paused"
    ARCHIVED = "Archived"
    COMPLETED = "Completed"
    RETIRED = "Retired"


SEASON_TRACKED_KINDS = frozenset({MediaKind.SHOW, MediaKind.ANIME})


class Progress(BaseModel):
    """Units consumed out of a total. Out-of-range values are clamped."""

    current: int = 0
    total: Optional[int] = None

    @field_validator("current", mode="before")
    @classmethod
    def clamp_current(cls, value):
        if value is None:
            return 0
        return max(int(value), 0)

    @field_validator("total", mode="before")
    @classmethod
    def drop_empty_total(cls, value):
        if value is None:
            return None
        value = int(value)
        return value if value >= 1 else None

    @model_validator(mode="after")
    def clamp_to_total(self):
        if self.total is not None and self.current > self.total:
            self.current = self.total
        return self


class SeasonInfo(BaseModel):
    current_season: Optional[int] = None
    total_seasons: Optional[int] = None
    season_name: Optional[str] = None
    episodes_in_season: Optional[int] = None
    # Episode count per season, index 0 is season 1.
    season_episodes: Optional[List[int]] = None
    season_year: Optional[int] = None

    @field_validator("current_season", "total_seasons", mode="before")
    @classmethod
    def positive_or_none(cls, value):
        if value is None:
            return None
        value = int(value)
        return value if value >= 1 else None

    @field_validator("episodes_in_season", mode="before")
    @classmethod
    def at_least_one_episode(cls, value):
        if value is None:
            return None
        return max(int(value), 1)

    @field_validator("season_episodes", mode="before")
    @classmethod
    def clean_season_table(cls, value):
        if not value:
            return None
        return [max(int(count or 0), 1) for count in value]

    @model_validator(mode="after")
    def align_with_table(self):
        if self.season_episodes:
            self.total_seasons = len(self.season_episodes)
        if (
            self.current_season is not None
            and self.total_seasons is not None
            and self.current_season > self.total_seasons
        ):
            self.current_season = self.total_seasons
        return self


class ExternalMetadata(BaseModel):
    id: Optional[str] = None
    source: Optional[str] = None
    score: Optional[float] = None
    genres: Optional[List[str]] = None
    synopsis: Optional[str] = None


class MediaItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: Optional[str] = None
    name: Optional[str] = None
    media_kind: MediaKind
    status: MediaStatus = MediaStatus.IN_PROGRESS
    cover_art_url: Optional[str] = None
    progress: Progress = Field(default_factory=Progress)
    season_info: Optional[SeasonInfo] = None
    additional_progress: Dict[str, Progress] = Field(default_factory=dict)
    external: Optional[ExternalMetadata] = None
    date_added: datetime
    date_paused: Optional[datetime] = None

    @property
    def season_tracked(self) -> bool:
        return (
            self.media_kind in SEASON_TRACKED_KINDS
            and self.season_info is not None
            and self.season_info.current_season is not None
        )


class MediaItemCreate(BaseModel):
    name: Optional[str] = None
    media_kind: MediaKind
    cover_art_url: Optional[str] = None
    current_progress: Optional[int] = None
    total_progress: Optional[int] = None
    season_info: Optional[SeasonInfo] = None
    additional_progress: Dict[str, Progress] = Field(default_factory=dict)
    external: Optional[ExternalMetadata] = None


class MediaItemUpdate(BaseModel):
    name: Optional[str] = None
    media_kind: Optional[MediaKind] = None
    status: Optional[MediaStatus] = None
    cover_art_url: Optional[str] = None
    progress: Optional[Progress] = None
    season_info: Optional[SeasonInfo] = None
    additional_progress: Optional[Dict[str, Progress]] = None
    external: Optional[ExternalMetadata] = None
    # Season-relative entry ("episode 7 of the current season").
    episode_in_season: Optional[int] = None


class StatusUpdate(BaseModel):
    status: MediaStatus


class ProgressView(BaseModel):
    primary: str
    secondary: Optional[str] = None
    percent: float
    season_complete: bool = False
    can_advance: bool = False
    can_retreat: bool = False
