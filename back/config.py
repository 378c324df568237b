"""
Runtime configuration for the AnimeHub aggregation backend, via pydantic-settings.

Every value can be overridden with an environment variable prefixed by
ANIMEHUB_ (e.g. ANIMEHUB_SEARCH_ATTEMPTS=3), or from a .env file at the
project root. Durations are in seconds. A malformed value fails at startup
with the name of the offending variable.
"""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_PROJECT_ROOT = Path(__file__).parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ANIMEHUB_",
        env_file=_ENV_FILE if _ENV_FILE.exists() else ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Providers
    catalog_provider: str = Field(default="animesama")
    anime_sama_base_url: str = Field(default="https://api-anime-sama.onrender.com/api")
    anime_sama_image_cdn: str = Field(default="https://cdn.statically.io/gh/Anime-Sama/IMG/img/contenu")
    jikan_base_url: str = Field(default="https://api.jikan.moe/v4")
    mangadex_base_url: str = Field(default="https://api.mangadex.org")
    mangadex_uploads_url: str = Field(default="https://uploads.mangadex.org")
    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/131.0.0.0 Safari/537.36"
        )
    )

    # Resilience
    http_timeout: float = Field(default=15.0, gt=0, le=120)
    search_attempts: int = Field(default=2, ge=1, le=10)      # search & listings
    playback_attempts: int = Field(default=3, ge=1, le=10)    # blocks playback, so one more try
    base_delay: float = Field(default=1.0, ge=0, le=60)
    max_delay: float = Field(default=30.0, ge=0, le=300)
    min_query_length: int = Field(default=3, ge=1, le=20)

    # Cache: availability changes fast so everything stays in minutes
    cache_ttl_search: int = Field(default=120, ge=0, le=86400)
    cache_ttl_title: int = Field(default=600, ge=0, le=86400)
    cache_ttl_episodes: int = Field(default=600, ge=0, le=86400)
    cache_ttl_sources: int = Field(default=300, ge=0, le=86400)
    cache_ttl_listing: int = Field(default=300, ge=0, le=86400)
    cache_max_size: int = Field(default=1000, ge=0)

    # Placeholders for missing upstream fields
    placeholder_image: str = Field(default="https://via.placeholder.com/300x400")
    placeholder_synopsis: str = Field(default="Description non disponible")

    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def upper_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v!r}")
        return level

    @property
    def cache_ttls(self) -> dict[str, int]:
        """TTL per cache category."""
        return {
            "search": self.cache_ttl_search,
            "title": self.cache_ttl_title,
            "episodes": self.cache_ttl_episodes,
            "sources": self.cache_ttl_sources,
            "listing": self.cache_ttl_listing,
        }


settings = Settings()
