"""
Anime-Sama catalog provider for AnimeHub (primary source).

API: api-anime-sama.onrender.com (JSON, every payload wrapped in
{"success": bool, "data": ...})

Search:   GET /search?query=naruto
Title:    GET /anime/{id}          → title + seasons[] (languages, episodeCount)
Episodes: GET /seasons?animeId=&season=&language=
Sources:  GET /episode/{upstream-episode-id} → sources[] (one per mirror)
Listings: GET /trending, /catalogue, /random, /genres

The upstream names episodes "{anime}-episode-{n}-{lang}" and has no season
segment. We expose canonical ids from identifiers.py and translate back when
asking for sources.
"""

import logging

from config import settings
from errors import MalformedResponse
from identifiers import build_episode_id, normalize_language, parse_episode_id
from models import Episode, MediumType, Season, Server, Title, Unit
from sources.base import (
    ProviderAdapter,
    as_dict,
    as_int,
    as_list,
    delivery_for,
    iframe_src,
    parse_status,
    parse_type,
    parse_year,
    plain_text,
    text,
)

logger = logging.getLogger(__name__)


class Source(ProviderAdapter):
    name = "animesama"
    language = "fr"
    base_url = settings.anime_sama_base_url

    def __init__(self, base_url: str | None = None, transport=None, image_cdn: str = settings.anime_sama_image_cdn):
        super().__init__(base_url, transport)
        self.image_cdn = image_cdn.rstrip("/")

    # ── Search & listings ─────────────────────────────────────

    async def search(self, query: str) -> list[Title]:
        data = await self._get_envelope("/search", {"query": query.strip()})
        return self._parse_titles(data)

    async def trending(self) -> list[Title]:
        data = await self._get_envelope("/trending")
        return self._parse_titles(data)

    async def catalogue(self, page: int = 1, genre: str | None = None, type: str | None = None) -> list[Title]:
        params = {"page": page}
        if genre:
            params["genre"] = genre
        if type:
            params["type"] = type
        data = await self._get_envelope("/catalogue", params)
        return self._parse_titles(data)

    async def random(self) -> Title:
        data = await self._get_envelope("/random")
        title = self._parse_title(data)
        if title is None:
            raise MalformedResponse("GET /random: no usable title", provider=self.name)
        return title

    async def genres(self) -> list[str]:
        data = await self._get_envelope("/genres")
        return list(dict.fromkeys(text(g) for g in as_list(data) if text(g)))

    # ── Title ─────────────────────────────────────────────────

    async def get_title(self, title_id: str) -> Title:
        data = await self._get_envelope(f"/anime/{title_id}")
        title = self._parse_title(data, fallback_id=title_id)
        if title is None:
            raise MalformedResponse(f"GET /anime/{title_id}: no usable title", provider=self.name)
        return title

    # ── Episodes ──────────────────────────────────────────────

    async def get_season_episodes(self, title_id: str, season_number: int, language: str) -> list[Episode]:
        lang = normalize_language(language)
        data = await self._get_envelope(
            "/seasons",
            {"animeId": title_id, "season": season_number, "language": lang},
        )
        episodes: dict[int, Episode] = {}
        for raw in as_list(as_dict(data).get("episodes")):
            raw = as_dict(raw)
            number = as_int(raw.get("episodeNumber")) or as_int(raw.get("number"))
            if not number or number < 1 or number in episodes:
                continue
            if raw.get("available") is False:
                continue
            episodes[number] = Episode(
                id=build_episode_id(title_id, season_number, number, lang),
                number=number,
                title=text(raw.get("title")) or None,
                language=lang,
                season=season_number,
                locator=text(raw.get("id")) or None,
            )
        # upstream order is not guaranteed
        return [episodes[n] for n in sorted(episodes)]

    # ── Sources ───────────────────────────────────────────────

    async def get_episode_sources(self, episode_id: str) -> list[Server]:
        upstream_id, language = self.upstream_episode_id(episode_id)
        data = as_dict(await self._get_envelope(f"/episode/{upstream_id}", attempts=settings.playback_attempts))
        language = normalize_language(text(data.get("language"))) or language

        servers = []
        for raw in as_list(data.get("sources")):
            raw = as_dict(raw)
            url = iframe_src(text(raw.get("url")) or text(raw.get("embedUrl")) or text(raw.get("proxyUrl")))
            if not url:
                continue
            if url.startswith("//"):
                url = "https:" + url
            index = len(servers)
            servers.append(Server(
                url=url,
                name=text(raw.get("server"), f"Serveur {index + 1}"),
                quality=text(raw.get("quality")),
                language=normalize_language(text(raw.get("language"))) or language,
                delivery=delivery_for(url, raw.get("type")),
                index=index,
            ))
        return servers

    @staticmethod
    def upstream_episode_id(episode_id: str) -> tuple[str, str]:
        """
        Canonical id → the provider's own episode id, plus its language.
        one-piece-s1-e12-vostfr → one-piece-episode-12-vostfr
        Ids that are not ours are passed through untouched.
        """
        try:
            ref = parse_episode_id(episode_id)
        except ValueError:
            return episode_id, ""
        return f"{ref.title_id}-episode-{ref.number}-{ref.language}", ref.language

    # ── Normalization ─────────────────────────────────────────

    def _parse_titles(self, data) -> list[Title]:
        results = []
        seen = set()
        for raw in as_list(data):
            title = self._parse_title(raw)
            if title is None or title.id in seen:
                continue
            seen.add(title.id)
            results.append(title)
        return results

    def _parse_title(self, raw, fallback_id: str = "") -> Title | None:
        raw = as_dict(raw)
        title_id = text(raw.get("id")) or fallback_id
        if not title_id:
            logger.warning("[animesama] Dropping entry without id: %r", raw.get("title"))
            return None

        medium = parse_type(raw.get("type"))
        progress = as_dict(raw.get("progressInfo"))
        seasons = self._parse_seasons(raw.get("seasons"), medium)
        total = as_int(progress.get("totalEpisodes"))
        if not seasons and total:
            # only an aggregate count: expose it as a single season
            seasons = [Season(number=1, name="Saison 1", episode_count=total, locator=text(raw.get("url")))]

        return Title(
            id=title_id,
            title=text(raw.get("title"), title_id.replace("-", " ").title()),
            cover=self.fix_image_url(text(raw.get("image")), title_id),
            type=medium,
            status=parse_status(raw.get("status")),
            year=parse_year(raw.get("year")),
            genres=[text(g) for g in as_list(raw.get("genres"))],
            synopsis=plain_text(raw.get("description"), settings.placeholder_synopsis),
            provider=self.name,
            seasons=seasons,
        )

    def _parse_seasons(self, data, medium: MediumType) -> list[Season]:
        unit = Unit.CHAPTER if medium == MediumType.CHAPTERS else Unit.EPISODE
        seasons: dict[int, Season] = {}
        for raw in as_list(data):
            raw = as_dict(raw)
            number = as_int(raw.get("number"))
            if not number or number < 1 or number in seasons:
                continue
            count = as_int(raw.get("episodeCount"))
            seasons[number] = Season(
                number=number,
                name=text(raw.get("name"), f"Saison {number}"),
                languages=[text(lang) for lang in as_list(raw.get("languages"))],
                episode_count=count if count is not None and count >= 0 else None,
                locator=text(raw.get("url")),
                unit=unit,
            )
        return [seasons[n] for n in sorted(seasons)]

    def fix_image_url(self, image_url: str, title_id: str) -> str:
        """
        Point covers at the provider's image CDN. Missing, "N/A" and placeholder
        images fall back to the CDN's `<title-id>.jpg`.
        """
        default = f"{self.image_cdn}/{title_id}.jpg" if title_id else settings.placeholder_image
        if not image_url or image_url == "N/A" or "placeholder" in image_url:
            return default
        if image_url.startswith(self.image_cdn):
            return image_url
        filename = image_url.split("/")[-1]
        if not filename:
            return default
        return f"{self.image_cdn}/{filename}"
