"""
MangaDex provider: chapter/page source for AnimeHub.

API: https://api.mangadex.org (public, no key for reads)

Search:   GET /manga?title=...&includes[]=cover_art
Title:    GET /manga/{id}                → one "season" holding every chapter
Chapters: GET /manga/{id}/feed?translatedLanguage[]=fr&order[chapter]=asc
Pages:    GET /chapter?manga=&chapter=   → upstream chapter id
          GET /at-home/server/{chapterId} → baseUrl + page file names

A chapter's pages are exposed as two "servers": full quality ("data") and
compressed ("data-saver"), each carrying the complete ordered page list.

Language codes like "pt-br" are flattened to "ptbr" so they fit in ids.
"""

import logging

from config import settings
from errors import NotFound
from identifiers import build_id, normalize_language, parse_episode_id
from models import DeliveryType, Episode, MediumType, Season, Server, Title, Unit
from sources.base import (
    ProviderAdapter,
    as_dict,
    as_int,
    as_list,
    parse_status,
    parse_year,
    plain_text,
    text,
)

logger = logging.getLogger(__name__)

_INCLUDES = [("includes[]", "cover_art"), ("includes[]", "author"), ("includes[]", "artist")]
_RATINGS = [("contentRating[]", "safe"), ("contentRating[]", "suggestive")]
_FEED_PAGE = 500
_MAX_FEED_PAGES = 10
_LISTING_SIZE = 20


def to_code(lang: str) -> str:
    """MangaDex language → our id-safe code (pt-br → ptbr)."""
    return normalize_language(lang)


def from_code(code: str) -> str:
    """Our code → MangaDex language (ptbr → pt-br)."""
    code = normalize_language(code)
    if len(code) == 4 and code.isalpha():
        return f"{code[:2]}-{code[2:]}"
    return code


def _localized(value, *prefer: str) -> str:
    """Pick a translation from a {lang: text} map, preferred languages first."""
    value = as_dict(value)
    for lang in prefer:
        if text(value.get(lang)):
            return text(value.get(lang))
    for candidate in value.values():
        if text(candidate):
            return text(candidate)
    return ""


class Source(ProviderAdapter):
    name = "mangadex"
    language = "fr"
    base_url = settings.mangadex_base_url

    def __init__(self, base_url: str | None = None, transport=None, uploads_url: str = settings.mangadex_uploads_url):
        super().__init__(base_url, transport)
        self.uploads_url = uploads_url.rstrip("/")

    # ── Search & listings ─────────────────────────────────────

    async def search(self, query: str) -> list[Title]:
        params = [("title", query.strip()), ("limit", _LISTING_SIZE), *_INCLUDES]
        payload = await self._get_json("/manga", params)
        return self._parse_titles(payload)

    async def trending(self) -> list[Title]:
        params = [("limit", _LISTING_SIZE), ("order[followedCount]", "desc"), *_INCLUDES, *_RATINGS]
        return self._parse_titles(await self._get_json("/manga", params))

    async def catalogue(self, page: int = 1, genre: str | None = None, type: str | None = None) -> list[Title]:
        params = [
            ("limit", _LISTING_SIZE),
            ("offset", max(page - 1, 0) * _LISTING_SIZE),
            ("order[createdAt]", "desc"),
            *_INCLUDES,
            *_RATINGS,
        ]
        if genre:
            params.append(("includedTags[]", genre))
        return self._parse_titles(await self._get_json("/manga", params))

    async def random(self) -> Title:
        payload = as_dict(await self._get_json("/manga/random", [*_INCLUDES, *_RATINGS]))
        title = self._parse_title(payload.get("data"))
        if title is None:
            raise NotFound("random returned nothing usable", provider=self.name)
        return title

    async def genres(self) -> list[str]:
        payload = as_dict(await self._get_json("/manga/tag"))
        names = [_localized(as_dict(tag.get("attributes")).get("name"), "fr", "en") for tag in map(as_dict, as_list(payload.get("data")))]
        return sorted(dict.fromkeys(n for n in names if n))

    # ── Title & chapters ──────────────────────────────────────

    async def get_title(self, title_id: str) -> Title:
        payload = as_dict(await self._get_by_id(f"/manga/{title_id}", _INCLUDES))
        title = self._parse_title(payload.get("data"))
        if title is None:
            raise NotFound(f"manga {title_id} not found", provider=self.name)
        return title

    async def get_season_episodes(self, title_id: str, season_number: int, language: str) -> list[Episode]:
        lang = to_code(language)
        chapters: dict[int, Episode] = {}
        for page in range(_MAX_FEED_PAGES):
            params = [
                ("translatedLanguage[]", from_code(lang)),
                ("order[chapter]", "asc"),
                ("limit", _FEED_PAGE),
                ("offset", page * _FEED_PAGE),
            ]
            payload = as_dict(await self._get_json(f"/manga/{title_id}/feed", params))
            batch = as_list(payload.get("data"))
            for raw in batch:
                raw = as_dict(raw)
                attrs = as_dict(raw.get("attributes"))
                number = as_int(attrs.get("chapter"))
                if not number or number < 1:
                    # oneshots and "12.5" extras have no integer ordinal
                    continue
                if number in chapters:
                    # same chapter from another scanlation group
                    continue
                chapters[number] = Episode(
                    id=build_id(title_id, season_number, number, lang, Unit.CHAPTER),
                    number=number,
                    title=text(attrs.get("title")) or None,
                    language=lang,
                    season=season_number,
                    locator=text(raw.get("id")) or None,
                )
            total = as_int(payload.get("total")) or 0
            if len(batch) < _FEED_PAGE or (page + 1) * _FEED_PAGE >= total:
                break
        return [chapters[n] for n in sorted(chapters)]

    # ── Pages ─────────────────────────────────────────────────

    async def get_episode_sources(self, episode_id: str) -> list[Server]:
        chapter_id, lang, external = await self._resolve_chapter(episode_id)
        if external:
            return [Server(url=external, name="MangaDex (externe)", language=lang, delivery=DeliveryType.EMBED)]

        payload = as_dict(await self._get_json(f"/at-home/server/{chapter_id}", attempts=settings.playback_attempts))
        base = text(payload.get("baseUrl"))
        chapter = as_dict(payload.get("chapter"))
        chapter_hash = text(chapter.get("hash"))
        if not base or not chapter_hash:
            logger.warning("[mangadex] No page server for chapter %s", chapter_id)
            return []

        servers = []
        for folder, label, quality in (("data", "MangaDex", "original"), ("data-saver", "MangaDex (data saver)", "compressed")):
            files = as_list(chapter.get("data" if folder == "data" else "dataSaver"))
            pages = [f"{base}/{folder}/{chapter_hash}/{text(f)}" for f in files if text(f)]
            if not pages:
                continue
            servers.append(Server(
                url=pages[0],
                name=label,
                quality=quality,
                language=lang,
                delivery=DeliveryType.DIRECT,
                index=len(servers),
                pages=pages,
            ))
        return servers

    async def _resolve_chapter(self, episode_id: str) -> tuple[str, str, str]:
        """Canonical chapter id → (upstream chapter uuid, language, external url)."""
        try:
            ref = parse_episode_id(episode_id)
        except ValueError:
            # already an upstream chapter uuid
            return episode_id, "", ""

        params = [
            ("manga", ref.title_id),
            ("chapter", str(ref.number)),
            ("translatedLanguage[]", from_code(ref.language)),
            ("limit", 10),
        ]
        payload = as_dict(await self._get_json("/chapter", params, attempts=settings.playback_attempts))
        for raw in as_list(payload.get("data")):
            raw = as_dict(raw)
            chapter_id = text(raw.get("id"))
            if chapter_id:
                external = text(as_dict(raw.get("attributes")).get("externalUrl"))
                return chapter_id, ref.language, external
        raise NotFound(f"chapter {ref.number} ({ref.language}) of {ref.title_id} not found", provider=self.name)

    # ── Normalization ─────────────────────────────────────────

    def _parse_titles(self, payload) -> list[Title]:
        results = []
        for raw in as_list(as_dict(payload).get("data")):
            title = self._parse_title(raw)
            if title is not None:
                results.append(title)
        return results

    def _parse_title(self, raw) -> Title | None:
        raw = as_dict(raw)
        manga_id = text(raw.get("id"))
        if not manga_id:
            logger.warning("[mangadex] Dropping entry without id")
            return None
        attrs = as_dict(raw.get("attributes"))

        cover = ""
        for rel in map(as_dict, as_list(raw.get("relationships"))):
            if rel.get("type") == "cover_art":
                file_name = text(as_dict(rel.get("attributes")).get("fileName"))
                if file_name:
                    cover = f"{self.uploads_url}/covers/{manga_id}/{file_name}"
                break

        tags = [
            _localized(as_dict(tag.get("attributes")).get("name"), "fr", "en")
            for tag in map(as_dict, as_list(attrs.get("tags")))
        ]
        languages = [to_code(text(lang)) for lang in as_list(attrs.get("availableTranslatedLanguages")) if text(lang)]
        # french first: that is what the clients ask for by default
        languages.sort(key=lambda code: (code != "fr", code != "en"))

        return Title(
            id=manga_id,
            title=_localized(attrs.get("title"), "fr", "en") or "Titre non disponible",
            cover=cover or settings.placeholder_image,
            type=MediumType.CHAPTERS,
            status=parse_status(attrs.get("status")),
            year=parse_year(attrs.get("year")),
            genres=[t for t in tags if t],
            synopsis=plain_text(_localized(attrs.get("description"), "fr", "en"), settings.placeholder_synopsis),
            provider=self.name,
            seasons=[Season(
                number=1,
                name="Chapitres",
                languages=languages,
                episode_count=as_int(attrs.get("lastChapter")),
                locator=manga_id,
                unit=Unit.CHAPTER,
            )],
        )
