"""
Normalized entities returned by every provider adapter, and the response
envelopes the aggregator hands to clients.

All models are frozen value objects built fresh for each call.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MediumType(str, Enum):
    SERIES = "series"
    FILM = "film"
    CHAPTERS = "chapters"


class Status(str, Enum):
    ONGOING = "ongoing"
    FINISHED = "finished"
    UNKNOWN = "unknown"


class DeliveryType(str, Enum):
    EMBED = "embed"        # iframe player page
    DIRECT = "direct"      # plain file (.mp4, page image)
    MANIFEST = "manifest"  # HLS / DASH playlist


class Unit(str, Enum):
    EPISODE = "episode"
    CHAPTER = "chapter"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class Server(_Frozen):
    url: str
    name: str
    quality: str = ""
    language: str = ""
    delivery: DeliveryType = DeliveryType.EMBED
    index: int = 0
    pages: list[str] = Field(default_factory=list)
    headers: dict[str, str] = Field(default_factory=dict)


class Episode(_Frozen):
    id: str
    number: int = Field(gt=0)
    title: Optional[str] = None
    language: str
    season: Optional[int] = None
    servers: list[Server] = Field(default_factory=list)
    locator: Optional[str] = None


class Season(_Frozen):
    number: int = Field(gt=0)
    name: str = ""
    languages: list[str] = Field(default_factory=list)
    episode_count: Optional[int] = Field(default=None, ge=0)
    locator: str = ""
    unit: Unit = Unit.EPISODE

    @field_validator("languages")
    @classmethod
    def _normalize_languages(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(lang.strip().lower() for lang in value if lang and lang.strip()))


class Title(_Frozen):
    id: str
    title: str
    cover: str
    type: MediumType = MediumType.SERIES
    status: Status = Status.UNKNOWN
    year: Optional[int] = None
    genres: list[str] = Field(default_factory=list)
    synopsis: str = ""
    provider: str = ""
    seasons: list[Season] = Field(default_factory=list)

    @field_validator("genres")
    @classmethod
    def _dedupe_genres(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(g.strip() for g in value if g and g.strip()))

    def season(self, number: int) -> Season | None:
        for s in self.seasons:
            if s.number == number:
                return s
        return None


# --- Client-facing envelopes ---

class TitleResponse(_Frozen):
    title: Title
    degraded: bool = False


class EpisodeListResponse(_Frozen):
    title_id: str
    season: int
    language: str
    requested_language: str
    requested_language_unavailable: bool = False
    episodes: list[Episode] = Field(default_factory=list)
    degraded: bool = False


class SourcesResponse(_Frozen):
    episode_id: str
    servers: list[Server] = Field(default_factory=list)
    selected_index: Optional[int] = None
    degraded: bool = False


class SearchResponse(_Frozen):
    query: str = ""
    results: list[Title] = Field(default_factory=list)
    degraded: bool = False


class GenresResponse(_Frozen):
    genres: list[str] = Field(default_factory=list)
    degraded: bool = False
