"""
Synthetic episode/chapter identifiers.

Ids are derived, never stored: the same (title, season, number, language)
always yields the same string, whether it is built from the episode list or
from a deep link.

    one-piece-s1-e12-vostfr     season 1, episode 12
    naruto-e3-vf                single-season title, season segment elided
    <manga-id>-s1-c7-en         chapter 7
"""

import re
from dataclasses import dataclass
from typing import Optional

from models import Unit

_MARKERS = {Unit.EPISODE: "e", Unit.CHAPTER: "c"}
_UNITS = {v: k for k, v in _MARKERS.items()}

_ID_RE = re.compile(
    r"^(?P<title>.+?)"
    r"(?:-s(?P<season>\d+))?"
    r"-(?P<marker>[ec])(?P<number>\d+)"
    r"-(?P<lang>[a-z0-9]+)$"
)
_NOT_LANG_RE = re.compile(r"[^a-z0-9]")


@dataclass(frozen=True)
class EpisodeRef:
    title_id: str
    season: Optional[int]
    number: int
    language: str
    unit: Unit = Unit.EPISODE


def normalize_language(language: str) -> str:
    """Lower-case, keeping only [a-z0-9] so any code fits in an id (pt-br → ptbr)."""
    return _NOT_LANG_RE.sub("", (language or "").lower())


def _build(title_id: str, season_number: Optional[int], number: int, language: str, unit: Unit) -> str:
    title_id = (title_id or "").strip()
    lang = normalize_language(language)
    if not title_id:
        raise ValueError("title id is required")
    if not lang:
        raise ValueError(f"invalid language code: {language!r}")
    if number < 1:
        raise ValueError(f"{unit.value} number must be positive, got {number}")

    parts = [title_id]
    if season_number is not None:
        if season_number < 1:
            raise ValueError(f"season number must be positive, got {season_number}")
        parts.append(f"s{season_number}")
    parts.append(f"{_MARKERS[unit]}{number}")
    parts.append(lang)
    return "-".join(parts)


def build_episode_id(title_id: str, season_number: Optional[int], episode_number: int, language: str) -> str:
    return _build(title_id, season_number, episode_number, language, Unit.EPISODE)


def build_id(title_id: str, season_number: Optional[int], number: int, language: str, unit: Unit) -> str:
    return _build(title_id, season_number, number, language, unit)


def parse_episode_id(episode_id: str) -> EpisodeRef:
    """Inverse of build_episode_id / build_id. Raises ValueError on foreign ids."""
    match = _ID_RE.match((episode_id or "").strip())
    if not match:
        raise ValueError(f"not a synthetic episode id: {episode_id!r}")
    season = match.group("season")
    return EpisodeRef(
        title_id=match.group("title"),
        season=int(season) if season is not None else None,
        number=int(match.group("number")),
        language=match.group("lang"),
        unit=_UNITS[match.group("marker")],
    )
