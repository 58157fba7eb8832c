"""Season data from catalog lookups.

Catalog responses (TMDB show details, Jikan anime results) are fetched by
the caller; this module only reads them. They are treated as untrusted:
missing or malformed fields fall back to defaults instead of failing.
"""
from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Any, List, Mapping, Optional

from shelftrack.schemas import SeasonInfo
from shelftrack.seasons import DEFAULT_EPISODES_PER_SEASON

SEASON_TITLE_PATTERNS = [
    re.compile(r"^(.+?):\s*Season\s+(\d+)$", re.IGNORECASE),
    re.compile(r"^(.+?)\s+Season\s+(\d+)$", re.IGNORECASE),
    re.compile(r"^(.+?)\s+S(\d+)$", re.IGNORECASE),
    re.compile(r"^(.+?)\s+(\d+)(?:st|nd|rd|th)?\s+Season$", re.IGNORECASE),
    re.compile(r"^(.+?)\s+Part\s+(\d+)$", re.IGNORECASE),
]


@dataclass
class SeasonOption:
    value: int
    label: str
    episodes: int


def parse_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_year(value: Any) -> int | None:
    if not value:
        return None
    return parse_int(str(value)[:4])


def extract_season_from_title(title: str) -> tuple[int | None, str]:
    """Split "Title Season 2" style names into (2, "Title")."""
    cleaned = (title or "").strip()
    for pattern in SEASON_TITLE_PATTERNS:
        match = pattern.match(cleaned)
        if match:
            return int(match.group(2)), match.group(1).strip()
    return None, cleaned


def _numbered_seasons(details: Mapping[str, Any]) -> List[Mapping[str, Any]]:
    seasons = [
        season
        for season in details.get("seasons") or []
        if isinstance(season, Mapping) and (parse_int(season.get("season_number")) or 0) > 0
    ]
    return sorted(seasons, key=lambda season: parse_int(season.get("season_number")))


def season_options(details: Mapping[str, Any]) -> List[SeasonOption]:
    options = []
    for season in _numbered_seasons(details):
        number = parse_int(season.get("season_number"))
        options.append(
            SeasonOption(
                value=number,
                label=season.get("name") or f"Season {number}",
                episodes=parse_int(season.get("episode_count")) or 0,
            )
        )
    return options


def season_info_from_show(
    details: Mapping[str, Any], selected_season: Optional[int] = None
) -> SeasonInfo:
    """Build SeasonInfo for a show the user starts watching at ``selected_season``.

    Specials (season 0) are left out of the per-season table.
    """
    current = selected_season or 1
    seasons = _numbered_seasons(details)
    selected = next(
        (season for season in seasons if parse_int(season.get("season_number")) == current),
        None,
    )
    table = [
        parse_int(season.get("episode_count")) or DEFAULT_EPISODES_PER_SEASON for season in seasons
    ]
    episodes = None
    if selected is not None:
        episodes = parse_int(selected.get("episode_count"))
    return SeasonInfo(
        current_season=current,
        total_seasons=parse_int(details.get("number_of_seasons")),
        season_name=(selected or {}).get("name") or f"Season {current}",
        episodes_in_season=episodes or DEFAULT_EPISODES_PER_SEASON,
        season_episodes=table or None,
        season_year=parse_year((selected or {}).get("air_date")),
    )


def season_info_from_anime(result: Mapping[str, Any]) -> SeasonInfo:
    """Anime catalogs list each season as its own title; read the number from the name."""
    season_number, _ = extract_season_from_title(result.get("title") or "")
    return SeasonInfo(
        current_season=season_number,
        season_name=f"Season {season_number}" if season_number else None,
        episodes_in_season=parse_int(result.get("episodes")),
        season_year=parse_int(result.get("year")),
    )


def suggest_anime_seasons(title: str, lookahead: int = 2) -> List[str]:
    season_number, clean_title = extract_season_from_title(title)
    if not season_number:
        return []
    suggestions = [f"{clean_title} Season {number}" for number in range(1, season_number)]
    if season_number < 5:
        suggestions.extend(
            f"{clean_title} Season {number}"
            for number in range(season_number + 1, season_number + lookahead + 1)
        )
    return suggestions
