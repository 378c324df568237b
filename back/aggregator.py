"""
Aggregation facade: the single entry point the HTTP layer talks to.

Each method composes a provider adapter, the cache, the synthesizer and the
selectors, and applies the same degrade-not-fail policy:

1. fresh cache entry
2. live provider call (single-flight per cache key)
3. provider down or answering garbage → last known value for that key,
   flagged `degraded`
4. still nothing → built-in fallback catalog (fallback.py), flagged `degraded`
5. still nothing → ProviderUnavailable

NotFound is never papered over. A search without matches is an empty
response, not an error.
"""

import logging
import random

from config import settings
import fallback
from cache import ResponseCache, make_key
from errors import MalformedResponse, NotFound, ProviderError, ProviderUnavailable
from identifiers import normalize_language
from models import (
    Episode,
    EpisodeListResponse,
    GenresResponse,
    SearchResponse,
    Server,
    SourcesResponse,
    Title,
    TitleResponse,
)
from selection import ActiveLanguage, select_language, select_server
from sources.base import ProviderAdapter
from synthesizer import synthesize

logger = logging.getLogger(__name__)

# failures that trigger the degraded path; NotFound is not one of them
_DEGRADABLE = (ProviderUnavailable, MalformedResponse)

_TRENDING_SIZE = 20
_MAX_COVER_LOOKUPS = 8


class Aggregator:
    def __init__(
        self,
        provider: ProviderAdapter,
        *,
        media_info: ProviderAdapter | None = None,
        cache: ResponseCache | None = None,
        rng: random.Random | None = None,
    ):
        self.provider = provider
        self.media_info = media_info if media_info is not provider else None
        self.cache = cache
        self._rng = rng or random.Random()

    @property
    def name(self) -> str:
        return self.provider.name

    async def close(self) -> None:
        await self.provider.close()
        if self.media_info is not None:
            await self.media_info.close()

    # ── Titles ────────────────────────────────────────────────

    async def resolve_title(self, title_id: str) -> TitleResponse:
        key = make_key("title", self.name, title_id)
        try:
            title = await self._fetch(key, lambda: self.provider.get_title(title_id), "title")
        except _DEGRADABLE as e:
            title = (
                self._stale(key)
                or self._stale(make_key("seen", self.name, title_id))
                or fallback.find(self.name, title_id)
            )
            if title is None:
                raise self._unavailable(e)
            logger.warning("[%s] Serving degraded title '%s': %s", self.name, title_id, e)
            return TitleResponse(title=title, degraded=True)

        title = (await self._with_covers([title]))[0]
        return TitleResponse(title=title)

    # ── Episodes ──────────────────────────────────────────────

    async def resolve_season_episodes(self, title_id: str, season_number: int, language: str) -> EpisodeListResponse:
        requested = normalize_language(language)
        degraded = False

        try:
            title_resp = await self.resolve_title(title_id)
        except ProviderUnavailable as e:
            logger.warning("[%s] No metadata for '%s', asking for episodes blind: %s", self.name, title_id, e)
            title, degraded = None, True
        else:
            title, degraded = title_resp.title, title_resp.degraded

        season = title.season(season_number) if title else None
        if title is not None and title.seasons and season is None:
            raise NotFound(f"'{title_id}' has no season {season_number}", provider=self.name)

        active = select_language(season, requested) if season else ActiveLanguage(requested, requested)
        if not active.language:
            active = ActiveLanguage(self.provider.language, requested)
        if active.fell_back:
            logger.info(
                "[%s] '%s' S%d has no '%s', falling back to '%s'",
                self.name, title_id, season_number, requested, active.language,
            )

        key = make_key("episodes", self.name, title_id, season_number, active.language)
        try:
            episodes = await self._fetch(
                key,
                lambda: self.provider.get_season_episodes(title_id, season_number, active.language),
                "episodes",
            )
        except NotFound:
            if season is None:
                raise
            # the title advertises the season, only the list is missing
            episodes = []
        except _DEGRADABLE as e:
            stale = self._stale(key)
            if stale is None and not (season and season.episode_count):
                raise self._unavailable(e)
            logger.warning("[%s] Serving degraded episodes for '%s' S%d: %s", self.name, title_id, season_number, e)
            episodes, degraded = stale or [], True

        if not episodes and season is not None:
            episodes = synthesize(season, title_id, active.language)

        return EpisodeListResponse(
            title_id=title_id,
            season=season_number,
            language=active.language,
            requested_language=requested,
            requested_language_unavailable=active.fell_back,
            episodes=_ascending(episodes),
            degraded=degraded,
        )

    # ── Playback ──────────────────────────────────────────────

    async def resolve_playable_sources(self, episode_id: str, server_index: int | None = None) -> SourcesResponse:
        key = make_key("sources", self.name, episode_id)
        degraded = False
        try:
            servers = await self._fetch(key, lambda: self.provider.get_episode_sources(episode_id), "sources")
        except _DEGRADABLE as e:
            servers = self._stale(key)
            if servers is None:
                raise self._unavailable(e)
            logger.warning("[%s] Serving last known sources for '%s': %s", self.name, episode_id, e)
            degraded = True

        servers = _indexed(servers)
        active = select_server(servers, server_index)
        return SourcesResponse(
            episode_id=episode_id,
            servers=servers,
            selected_index=active.index,
            degraded=degraded,
        )

    # ── Search & listings ─────────────────────────────────────

    async def search(self, query: str) -> SearchResponse:
        query = (query or "").strip()
        if len(query) < settings.min_query_length:
            return SearchResponse(query=query)

        key = make_key("search", self.name, query)
        degraded = False
        try:
            results = await self._fetch(key, lambda: self.provider.search(query), "search")
        except _DEGRADABLE as e:
            results = self._stale(key)
            if results is None:
                results = fallback.search(self.name, query)
                if not results:
                    raise self._unavailable(e)
            logger.warning("[%s] Serving degraded search for '%s': %s", self.name, query, e)
            degraded = True

        results = await self._with_covers(results)
        self._remember(results)
        return SearchResponse(query=query, results=results, degraded=degraded)

    async def trending(self) -> SearchResponse:
        key = make_key("trending", self.name)
        try:
            results = await self._fetch(key, self.provider.trending, "listing")
        except ProviderError as e:
            # NotFound here means "no trending endpoint", so the catalogue stands in
            logger.warning("[%s] Trending unavailable, falling back: %s", self.name, e)
            results = await self._trending_fallback(key, e)
            degraded = True
        else:
            degraded = False

        results = await self._with_covers(results)
        self._remember(results)
        return SearchResponse(results=results, degraded=degraded)

    async def _trending_fallback(self, key, error: ProviderError) -> list[Title]:
        try:
            catalogue = await self._fetch(
                make_key("catalogue", self.name, 1, "", ""),
                lambda: self.provider.catalogue(1),
                "listing",
            )
        except ProviderError as e:
            logger.info("[%s] Catalogue fallback failed too: %s", self.name, e)
        else:
            if catalogue:
                return catalogue[:_TRENDING_SIZE]

        stale = self._stale(key)
        if stale:
            return stale
        titles = fallback.fallback_titles(self.name)
        if titles:
            return titles
        raise self._unavailable(error)

    async def catalogue(self, page: int = 1, genre: str | None = None, type: str | None = None) -> SearchResponse:
        key = make_key("catalogue", self.name, page, genre or "", type or "")
        degraded = False
        try:
            results = await self._fetch(key, lambda: self.provider.catalogue(page, genre, type), "listing")
        except _DEGRADABLE as e:
            results = self._stale(key)
            if results is None and page == 1:
                results = [
                    t for t in fallback.fallback_titles(self.name)
                    if not genre or genre.lower() in (g.lower() for g in t.genres)
                ] or None
            if results is None:
                raise self._unavailable(e)
            logger.warning("[%s] Serving degraded catalogue page %d: %s", self.name, page, e)
            degraded = True

        self._remember(results)
        return SearchResponse(results=results, degraded=degraded)

    async def random(self) -> TitleResponse:
        # never cached: two calls should not return the same title
        try:
            return TitleResponse(title=await self.provider.random())
        except ProviderError as e:
            pool = (
                self._stale(make_key("trending", self.name))
                or self._stale(make_key("catalogue", self.name, 1, "", ""))
                or fallback.fallback_titles(self.name)
            )
            if not pool:
                raise self._unavailable(e)
            logger.warning("[%s] Random unavailable, picking from known titles: %s", self.name, e)
            return TitleResponse(title=self._rng.choice(pool), degraded=True)

    async def genres(self) -> GenresResponse:
        key = make_key("genres", self.name)
        try:
            return GenresResponse(genres=await self._fetch(key, self.provider.genres, "listing"))
        except _DEGRADABLE as e:
            genres = self._stale(key)
            if genres is None:
                titles = fallback.fallback_titles(self.name)
                genres = sorted({g for t in titles for g in t.genres})
            logger.warning("[%s] Serving degraded genres: %s", self.name, e)
            return GenresResponse(genres=genres, degraded=True)

    # ── Helpers ───────────────────────────────────────────────

    async def _fetch(self, key, fetch, category: str):
        if self.cache is None:
            return await fetch()
        return await self.cache.get_or_fetch(key, fetch, category)

    def _stale(self, key):
        if self.cache is None:
            return None
        return self.cache.get_stale(key)

    def _remember(self, titles: list[Title]) -> None:
        """Keep listing entries around so a title page can degrade to them."""
        if self.cache is None:
            return
        for title in titles:
            self.cache.set(make_key("seen", self.name, title.id), title, "title")

    async def _with_covers(self, titles: list[Title]) -> list[Title]:
        """Replace placeholder covers using the media-info provider. Best effort."""
        find_cover = getattr(self.media_info, "find_cover", None)
        if find_cover is None:
            return titles

        result = []
        lookups = 0
        for title in titles:
            if title.cover == settings.placeholder_image and lookups < _MAX_COVER_LOOKUPS:
                lookups += 1
                cover = await find_cover(title.title)
                if cover:
                    title = title.model_copy(update={"cover": cover})
            result.append(title)
        return result

    def _unavailable(self, error: Exception) -> ProviderUnavailable:
        if isinstance(error, ProviderUnavailable):
            return error
        return ProviderUnavailable(str(error), provider=self.name, cause=error)


def _ascending(episodes: list[Episode]) -> list[Episode]:
    unique: dict[int, Episode] = {}
    for episode in episodes:
        unique.setdefault(episode.number, episode)
    return [unique[n] for n in sorted(unique)]


def _indexed(servers: list[Server]) -> list[Server]:
    """Index = position in the provider's list, so switching by index stays valid."""
    return [s if s.index == i else s.model_copy(update={"index": i}) for i, s in enumerate(servers)]
