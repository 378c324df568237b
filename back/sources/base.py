"""
Base class for provider adapters (plugin interface).

Every provider plugin must:
1. Create a file in sources/ (e.g. sources/my_provider.py)
2. Define a class named `Source` that inherits from `ProviderAdapter`
3. Implement all abstract methods, returning the normalized models from
   models.py

Adapters talk to exactly one upstream. Whatever goes wrong on the wire
(timeouts, 5xx, HTML error pages, missing fields) must come out of the
adapter either as a normalized value with placeholders, or as one of the
typed failures from errors.py: NotFound, ProviderUnavailable,
MalformedResponse. Raw httpx exceptions never cross this boundary.

All outbound calls go through `_get_json`, which applies the shared
retry/backoff policy (retry.py).
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Any

import httpx
from bs4 import BeautifulSoup

from config import settings
import retry
from errors import MalformedResponse, NotFound, ProviderUnavailable
from models import DeliveryType, Episode, MediumType, Server, Status, Title

logger = logging.getLogger(__name__)

HEADERS = {
    "User-Agent": settings.user_agent,
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "fr-FR,fr;q=0.9,en-US;q=0.8,en;q=0.7",
}


# ── Normalization helpers (upstream JSON is untrusted) ──────────

# finished first: "Finished Airing" also contains "airing"
_STATUS_WORDS = {
    Status.FINISHED: ("termin", "completed", "finished", "complete"),
    Status.ONGOING: ("en cours", "ongoing", "airing", "publishing", "releasing"),
}

_TYPE_WORDS = {
    MediumType.FILM: ("film", "movie"),
    MediumType.CHAPTERS: ("manga", "scan", "manhwa", "manhua", "webtoon", "novel"),
}


def text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    if not isinstance(value, (str, int, float)):
        return default
    value = str(value).strip()
    return value or default


def as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def parse_year(value: Any) -> int | None:
    """2019, "2019", "2019-10-05", "Oct 2019 to ?" -> 2019"""
    if isinstance(value, int) and not isinstance(value, bool):
        return value if 1900 <= value <= 2100 else None
    match = re.search(r"(19|20)\d{2}", text(value))
    return int(match.group()) if match else None


def parse_status(value: Any) -> Status:
    label = text(value).lower()
    for status, words in _STATUS_WORDS.items():
        if any(w in label for w in words):
            return status
    return Status.UNKNOWN


def parse_type(value: Any, default: MediumType = MediumType.SERIES) -> MediumType:
    label = text(value).lower()
    for medium, words in _TYPE_WORDS.items():
        if any(w in label for w in words):
            return medium
    return default


def plain_text(value: Any, default: str = "") -> str:
    """Like text(), but strips any HTML markup (synopses often carry <br>, <i>...)."""
    value = text(value)
    if "<" in value and ">" in value:
        value = BeautifulSoup(value, "lxml").get_text(" ", strip=True)
    return value or default


def iframe_src(value: str) -> str:
    """
    Some sources hand out a whole player snippet instead of a URL:
    '<iframe src="//vidmoly.to/embed-xyz.html" ...></iframe>' → its src.
    """
    if "<iframe" not in value.lower():
        return value
    iframe = BeautifulSoup(value, "lxml").select_one("iframe[src], iframe[data-src]")
    if iframe is None:
        return ""
    return iframe.get("src") or iframe.get("data-src") or ""


def delivery_for(url: str, declared: Any = None) -> DeliveryType:
    """Guess how a source is delivered from its declared type or its URL."""
    hint = f"{text(declared)} {url}".lower()
    if ".m3u8" in hint or ".mpd" in hint or "hls" in hint or "mpegurl" in hint:
        return DeliveryType.MANIFEST
    if re.search(r"\.(mp4|webm|mkv)(\?|$)", url.lower()) or "video/" in hint or "direct" in hint:
        return DeliveryType.DIRECT
    return DeliveryType.EMBED


class ProviderAdapter(ABC):
    name: str = "base"
    language: str = "fr"
    base_url: str = ""

    def __init__(self, base_url: str | None = None, transport: httpx.AsyncBaseTransport | None = None):
        if base_url is not None:
            self.base_url = base_url.rstrip("/")
        # tests inject an httpx.MockTransport here
        self._transport = transport
        self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers=HEADERS,
                follow_redirects=True,
                timeout=settings.http_timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def _get_json(
        self,
        path: str,
        params: dict | list | None = None,
        attempts: int = settings.search_attempts,
    ) -> Any:
        """
        GET `path` (relative to base_url) with retries and return the parsed
        JSON body.
        """
        client = self._get_client()
        url = f"{self.base_url}{path}"

        async def call() -> httpx.Response:
            resp = await client.get(url, params=params)
            resp.raise_for_status()
            return resp

        try:
            resp = await retry.execute(
                call, attempts, settings.base_delay, label=f"GET {path}", provider=self.name
            )
        except httpx.HTTPError as e:
            # too many redirects, undecodable body... nothing a retry would fix
            raise MalformedResponse(f"GET {path}: {type(e).__name__}: {e}", provider=self.name) from e

        body = resp.text
        if body.lstrip().startswith("<"):
            # Cloudflare / maintenance pages come back as HTML with a 200
            raise MalformedResponse(f"GET {path}: HTML instead of JSON", provider=self.name)
        try:
            return resp.json()
        except ValueError as e:
            raise MalformedResponse(f"GET {path}: invalid JSON", provider=self.name) from e

    async def _get_by_id(self, path: str, params: dict | list | None = None) -> Any:
        """`_get_json` for a lookup by id. An upstream rejecting the id itself (400) means it does not exist."""
        try:
            return await self._get_json(path, params)
        except ProviderUnavailable as e:
            if isinstance(e.cause, httpx.HTTPStatusError) and e.cause.response.status_code == 400:
                raise NotFound(f"GET {path}: HTTP 400", provider=self.name) from e
            raise

    async def _get_envelope(self, path: str, params: dict | None = None, attempts: int = settings.search_attempts) -> Any:
        """Unwrap the `{success, data}` envelope used by catalog-style APIs."""
        payload = await self._get_json(path, params, attempts)
        if not isinstance(payload, dict):
            raise MalformedResponse(f"GET {path}: expected an object", provider=self.name)
        if payload.get("success") is False:
            raise NotFound(f"GET {path}: {payload.get('message') or 'not found'}", provider=self.name)
        return payload.get("data")

    # --- Contract ---

    @abstractmethod
    async def search(self, query: str) -> list[Title]:
        """Search titles by name."""
        ...

    @abstractmethod
    async def get_title(self, title_id: str) -> Title:
        """Title details including its seasons. Raises NotFound if missing."""
        ...

    @abstractmethod
    async def get_season_episodes(self, title_id: str, season_number: int, language: str) -> list[Episode]:
        """
        Episodes of one season in one language. An empty list means the
        provider gave no list; the aggregator may synthesize one from the
        season's episode count.
        """
        ...

    @abstractmethod
    async def get_episode_sources(self, episode_id: str) -> list[Server]:
        """Playable mirrors for a synthetic episode id, in provider order."""
        ...

    # --- Optional listings: adapters override what their upstream offers ---

    async def trending(self) -> list[Title]:
        raise NotFound("trending not supported", provider=self.name)

    async def catalogue(self, page: int = 1, genre: str | None = None, type: str | None = None) -> list[Title]:
        raise NotFound("catalogue not supported", provider=self.name)

    async def random(self) -> Title:
        raise NotFound("random not supported", provider=self.name)

    async def genres(self) -> list[str]:
        return []
