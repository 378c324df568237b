"""
Jikan API (MyAnimeList) provider: secondary media-info source.

Jikan API: https://jikan.moe/ — free, no API key needed.
Rate limit: 3 requests/second, 60 requests/minute.

Good for metadata (covers, synopsis, genres, episode titles), useless for
playback: it has no video sources. The aggregator also uses `find_cover` to
replace placeholder covers coming from the catalog provider.
"""

import asyncio
import logging
import re
import time

from config import settings
from errors import NotFound, ProviderError
from identifiers import build_episode_id, normalize_language
from models import Episode, MediumType, Season, Server, Title
from sources.base import (
    ProviderAdapter,
    as_dict,
    as_int,
    as_list,
    parse_status,
    parse_type,
    parse_year,
    plain_text,
    text,
)

logger = logging.getLogger(__name__)

# In-memory cover cache: { "clean title" -> (cover_url, fetched_at) }
_covers: dict[str, tuple[str, float]] = {}
COVER_TTL = 86400  # 24 hours

# Rate limiting — sequential requests to respect Jikan limits
_lock = asyncio.Lock()
_last_request_time = 0.0
_MIN_DELAY = 0.5  # 500ms between requests (2 req/s, safe under 3/s limit)

# Episode lists are paged by 100; One Piece needs 12 pages
_MAX_EPISODE_PAGES = 20


class Source(ProviderAdapter):
    name = "jikan"
    language = "en"
    base_url = settings.jikan_base_url

    async def _get_json(self, path, params=None, attempts=settings.search_attempts):
        global _last_request_time
        async with _lock:
            wait = _MIN_DELAY - (time.monotonic() - _last_request_time)
            if wait > 0:
                await asyncio.sleep(wait)
            _last_request_time = time.monotonic()
        return await super()._get_json(path, params, attempts)

    async def _get_data(self, path: str, params: dict | None = None):
        return as_dict(await self._get_json(path, params)).get("data")

    # ── Search & listings ─────────────────────────────────────

    async def search(self, query: str) -> list[Title]:
        data = await self._get_data("/anime", {"q": query.strip(), "limit": 20, "sfw": "true"})
        return self._parse_titles(data)

    async def trending(self) -> list[Title]:
        data = await self._get_data("/top/anime", {"filter": "airing", "limit": 20})
        return self._parse_titles(data)

    async def catalogue(self, page: int = 1, genre: str | None = None, type: str | None = None) -> list[Title]:
        params = {"page": page, "limit": 25, "sfw": "true", "order_by": "popularity"}
        if genre and genre.isdigit():
            params["genres"] = genre
        if type:
            params["type"] = type.lower()
        data = await self._get_data("/anime", params)
        return self._parse_titles(data)

    async def random(self) -> Title:
        title = self._parse_title(await self._get_data("/random/anime"))
        if title is None:
            raise NotFound("random returned nothing usable", provider=self.name)
        return title

    async def genres(self) -> list[str]:
        data = await self._get_data("/genres/anime")
        return list(dict.fromkeys(text(as_dict(g).get("name")) for g in as_list(data) if text(as_dict(g).get("name"))))

    # ── Title & episodes ──────────────────────────────────────

    async def get_title(self, title_id: str) -> Title:
        title = self._parse_title(as_dict(await self._get_by_id(f"/anime/{title_id}/full")).get("data"))
        if title is None:
            raise NotFound(f"anime {title_id} not found", provider=self.name)
        return title

    async def get_season_episodes(self, title_id: str, season_number: int, language: str) -> list[Episode]:
        # MAL entries are single-season: each season is its own entry
        if season_number != 1:
            return []
        lang = normalize_language(language)
        episodes: dict[int, Episode] = {}
        for page in range(1, _MAX_EPISODE_PAGES + 1):
            payload = as_dict(await self._get_json(f"/anime/{title_id}/episodes", {"page": page}))
            for raw in as_list(payload.get("data")):
                raw = as_dict(raw)
                number = as_int(raw.get("mal_id"))
                if not number or number < 1 or number in episodes:
                    continue
                episodes[number] = Episode(
                    id=build_episode_id(title_id, season_number, number, lang),
                    number=number,
                    title=text(raw.get("title")) or None,
                    language=lang,
                    season=season_number,
                )
            if not as_dict(payload.get("pagination")).get("has_next_page"):
                break
        return [episodes[n] for n in sorted(episodes)]

    async def get_episode_sources(self, episode_id: str) -> list[Server]:
        raise NotFound("MyAnimeList has no playable sources", provider=self.name)

    # ── Covers ────────────────────────────────────────────────

    async def find_cover(self, title: str) -> str:
        """
        Cover image URL for a title, or "" if none was found.
        Results are cached for 24 hours, empty ones included.
        """
        key = clean_title(title).lower()
        if not key:
            return ""

        entry = _covers.get(key)
        if entry and time.time() - entry[1] < COVER_TTL:
            return entry[0]

        try:
            data = await self._get_data("/anime", {"q": key, "limit": 1, "sfw": "true"})
        except ProviderError as e:
            logger.info("[jikan] No cover for '%s': %s", key, e)
            return ""

        results = as_list(data)
        cover = self._cover(as_dict(results[0])) if results else ""
        _covers[key] = (cover, time.time())
        return cover

    # ── Normalization ─────────────────────────────────────────

    def _parse_titles(self, data) -> list[Title]:
        results = []
        seen = set()
        for raw in as_list(data):
            title = self._parse_title(raw)
            if title and title.id not in seen:
                seen.add(title.id)
                results.append(title)
        return results

    def _parse_title(self, raw) -> Title | None:
        raw = as_dict(raw)
        mal_id = as_int(raw.get("mal_id"))
        if not mal_id:
            return None
        title_id = str(mal_id)
        medium = parse_type(raw.get("type"))
        count = as_int(raw.get("episodes"))
        seasons = []
        if medium != MediumType.FILM or count:
            seasons = [Season(number=1, name="Season 1", episode_count=count, locator=text(raw.get("url")))]

        genres = [text(as_dict(g).get("name")) for g in as_list(raw.get("genres"))]
        return Title(
            id=title_id,
            title=text(raw.get("title_english")) or text(raw.get("title"), title_id),
            cover=self._cover(raw) or settings.placeholder_image,
            type=medium,
            status=parse_status(raw.get("status")),
            year=parse_year(raw.get("year")) or parse_year(as_dict(raw.get("aired")).get("from")),
            genres=genres,
            synopsis=plain_text(raw.get("synopsis"), settings.placeholder_synopsis),
            provider=self.name,
            seasons=seasons,
        )

    @staticmethod
    def _cover(raw: dict) -> str:
        jpg = as_dict(as_dict(raw.get("images")).get("jpg"))
        return text(jpg.get("large_image_url")) or text(jpg.get("image_url"))


def clean_title(title: str) -> str:
    """Remove common suffixes/patterns that hurt Jikan search accuracy."""
    title = (title or "").strip()
    # Remove VOSTFR/VF suffixes (with or without dash)
    title = re.sub(r'\s*[-–]\s*(VOSTFR|VF|vostfr|vf)\s*$', '', title)
    title = re.sub(r'\s+(VOSTFR|VF|vostfr|vf)\s*$', '', title)
    title = re.sub(r'\s*\((VOSTFR|VF|vostfr|vf)\)\s*$', '', title)
    # Remove season indicators like "Saison 2", "S2", "Season 2"
    title = re.sub(r'\s*(Saison|Season|S)\s*\d+\s*$', '', title, flags=re.IGNORECASE)
    # Remove "Part X", "Partie X", "Cour X"
    title = re.sub(r'\s*(Part|Partie|Cour)\s*\d+\s*$', '', title, flags=re.IGNORECASE)
    # Remove year in parentheses like "(2024)"
    title = re.sub(r'\s*\(\d{4}\)\s*$', '', title)
    title = title.strip(' -–—:')
    return title
