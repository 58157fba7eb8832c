"""Load-boundary normalisation of stored media documents.

Records written by older clients use camelCase or PascalCase keys, numeric
enum codes, Firestore-style timestamps and, for Shows and Anime, progress
counted inside the selected season only. Everything is brought to the
``MediaItem`` shape with absolute season progress here, so the rest of the
package only ever sees one representation.
"""
from datetime import datetime, timezone
import logging
from typing import Any, Mapping, Optional

from shelftrack.schemas import MediaItem, MediaKind, MediaStatus, Progress
from shelftrack.seasons import RelativeToSeason, SeasonTable, classify_progress, normalize_progress

logger = logging.getLogger(__name__)

PROGRESS_MODEL_ABSOLUTE = "absolute"

FIELD_ALIASES = {
    "id": ("id", "mediaItemId", "MediaItemId", "_id"),
    "owner_id": ("owner_id", "ownerId", "userId", "UserId"),
    "name": ("name", "Name"),
    "media_kind": ("media_kind", "mediaKind", "mediaType", "MediaType"),
    "status": ("status", "Status"),
    "cover_art_url": ("cover_art_url", "coverArtUrl", "CoverArtUrl"),
    "progress": ("progress", "Progress"),
    "season_info": ("season_info", "seasonInfo", "SeasonInfo"),
    "additional_progress": ("additional_progress", "additionalProgress", "AdditionalProgress"),
    "external": ("external", "External"),
    "date_added": ("date_added", "dateAdded", "DateAdded", "createdAt"),
    "date_paused": ("date_paused", "datePaused", "DatePaused"),
    "progress_model": ("progress_model", "progressModel"),
}

SEASON_INFO_ALIASES = {
    "current_season": ("current_season", "currentSeason", "CurrentSeason"),
    "total_seasons": ("total_seasons", "totalSeasons", "TotalSeasons"),
    "season_name": ("season_name", "seasonName", "SeasonName"),
    "episodes_in_season": ("episodes_in_season", "episodesInSeason", "EpisodesInSeason"),
    "season_episodes": (
        "season_episodes",
        "seasonEpisodes",
        "SeasonEpisodes",
        "perSeasonEpisodeCounts",
    ),
    "season_year": ("season_year", "seasonYear", "SeasonYear"),
}

EXTERNAL_ALIASES = {
    "id": ("id", "Id"),
    "source": ("source", "Source"),
    "score": ("score", "Score"),
    "genres": ("genres", "Genres"),
    "synopsis": ("synopsis", "Synopsis"),
}

# Codes written by the previous backend.
MEDIA_KIND_CODES = {0: MediaKind.BOOK, 1: MediaKind.SHOW, 2: MediaKind.ANIME, 3: MediaKind.MANGA}
STATUS_CODES = {
    0: MediaStatus.IN_PROGRESS,
    1: MediaStatus.PAUSED,
    2: MediaStatus.ARCHIVED,
    3: MediaStatus.COMPLETED,
    4: MediaStatus.RETIRED,
}


def pick(data: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def remap(data: Any, aliases: Mapping[str, tuple[str, ...]]) -> Optional[dict]:
    if not isinstance(data, Mapping):
        return None
    return {field: pick(data, keys) for field, keys in aliases.items()}


def parse_media_kind(value: Any) -> MediaKind:
    if isinstance(value, int):
        return MEDIA_KIND_CODES.get(value, MediaKind.BOOK)
    try:
        return MediaKind(value)
    except ValueError:
        logger.warning("Unknown media kind %r, treating as Book.", value)
        return MediaKind.BOOK


def parse_status(value: Any) -> MediaStatus:
    if isinstance(value, int):
        return STATUS_CODES.get(value, MediaStatus.IN_PROGRESS)
    try:
        return MediaStatus(value)
    except ValueError:
        logger.warning("Unknown status %r, treating as InProgress.", value)
        return MediaStatus.IN_PROGRESS


def as_utc(value: datetime) -> datetime:
    """Naive datetimes (SQLite drops the offset) are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, Mapping):
        seconds = pick(value, ("_seconds", "seconds"))
        if seconds is None:
            return None
        nanos = pick(value, ("_nanoseconds", "nanoseconds")) or 0
        return datetime.fromtimestamp(seconds + nanos / 1_000_000_000, tz=timezone.utc)
    if isinstance(value, (int, float)):
        # Epoch milliseconds.
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    try:
        return as_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
    except ValueError:
        logger.warning("Unparseable timestamp %r.", value)
        return None


def parse_progress(value: Any) -> Optional[dict]:
    if not isinstance(value, Mapping):
        return None
    return {
        "current": pick(value, ("current", "Current")),
        "total": pick(value, ("total", "Total")),
    }


def normalize_season_progress(item: MediaItem) -> tuple[MediaItem, bool]:
    """Convert season-relative progress to absolute. Returns (item, changed)."""
    if not item.season_tracked:
        return item, False
    variant = classify_progress(item.progress, item.season_info)
    if not isinstance(variant, RelativeToSeason):
        return item, False
    table = SeasonTable.from_info(item.season_info)
    absolute = normalize_progress(variant, table).absolute
    total = table.total_units()
    if total is None and item.progress.total is not None and item.progress.total >= absolute:
        total = item.progress.total
    progress = Progress(current=absolute, total=total)
    logger.info(
        "Normalized season progress for %s: S%sE%s -> %s.",
        item.id,
        variant.season,
        variant.episode,
        absolute,
    )
    return item.model_copy(update={"progress": progress}), True


def load_media_item(raw: Mapping[str, Any], doc_id: Optional[str] = None) -> MediaItem:
    data = remap(raw, FIELD_ALIASES)
    external_raw = data["external"]
    season_raw = data["season_info"]
    if season_raw is None and isinstance(external_raw, Mapping):
        season_raw = pick(external_raw, ("seasonInfo", "season_info"))
    additional = data["additional_progress"]
    if not isinstance(additional, Mapping):
        additional = {}
    item_id = data["id"] or doc_id
    if item_id is None:
        raise ValueError("Stored media document has no id")

    item = MediaItem(
        id=str(item_id),
        owner_id=data["owner_id"],
        name=data["name"],
        media_kind=parse_media_kind(data["media_kind"]),
        status=parse_status(data["status"]),
        cover_art_url=data["cover_art_url"],
        progress=parse_progress(data["progress"]) or {"current": 0},
        season_info=remap(season_raw, SEASON_INFO_ALIASES),
        additional_progress={
            key: parse_progress(value)
            for key, value in additional.items()
            if isinstance(value, Mapping)
        },
        external=remap(external_raw, EXTERNAL_ALIASES),
        date_added=parse_timestamp(data["date_added"]) or datetime.now(timezone.utc),
        date_paused=parse_timestamp(data["date_paused"]),
    )
    if data["progress_model"] == PROGRESS_MODEL_ABSOLUTE:
        return item
    item, _ = normalize_season_progress(item)
    return item


def dump_media_item(item: MediaItem) -> dict:
    document = item.model_dump(mode="json")
    document["progress_model"] = PROGRESS_MODEL_ABSOLUTE
    return document
