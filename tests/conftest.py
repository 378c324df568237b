"""Shared pytest fixtures and fakes."""

from __future__ import annotations

import httpx
import pytest

from config import settings
from errors import NotFound
from models import Episode, Season, Server, Title
from sources.base import ProviderAdapter


def response(status_code: int, *, url: str = "https://provider.test/", json_data=None, text: str = "") -> httpx.Response:
    req = httpx.Request("GET", url)
    if json_data is not None:
        return httpx.Response(status_code=status_code, json=json_data, request=req)
    return httpx.Response(status_code=status_code, text=text, request=req)


def make_title(title_id: str = "one-piece", *, count: int | None = 61, languages=("vostfr",), seasons: int = 1, **kwargs) -> Title:
    fields = {
        "title": title_id.replace("-", " ").title(),
        "cover": f"https://img.test/{title_id}.jpg",
        "provider": "animesama",
        "seasons": [
            Season(number=n, name=f"Saison {n}", languages=list(languages), episode_count=count)
            for n in range(1, seasons + 1)
        ],
    }
    fields.update(kwargs)
    return Title(id=title_id, **fields)


def make_servers(count: int, language: str = "vostfr") -> list[Server]:
    return [
        Server(url=f"https://player{i}.test/embed", name=f"Serveur {i + 1}", language=language, index=i)
        for i in range(count)
    ]


class FakeProvider(ProviderAdapter):
    """In-memory provider. Set `error` to make every call fail with it."""

    base_url = "https://provider.test"

    def __init__(self, titles=(), *, name: str = "animesama", episodes=None, servers=None, genres=None):
        super().__init__()
        self.name = name
        self.titles = {t.id: t for t in titles}
        self.episodes: dict[tuple, list[Episode]] = episodes or {}
        self.servers: dict[str, list[Server]] = servers or {}
        self.genre_names = genres or []
        self.error: Exception | None = None
        self.calls: list[tuple] = []

    def _called(self, *call) -> None:
        self.calls.append(call)
        if self.error is not None:
            raise self.error

    def count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call[0] == operation)

    async def search(self, query):
        self._called("search", query)
        q = query.lower()
        return [t for t in self.titles.values() if q in t.title.lower()]

    async def get_title(self, title_id):
        self._called("get_title", title_id)
        if title_id not in self.titles:
            raise NotFound(f"{title_id} not found", provider=self.name)
        return self.titles[title_id]

    async def get_season_episodes(self, title_id, season_number, language):
        self._called("get_season_episodes", title_id, season_number, language)
        return list(self.episodes.get((title_id, season_number, language), []))

    async def get_episode_sources(self, episode_id):
        self._called("get_episode_sources", episode_id)
        if episode_id not in self.servers:
            raise NotFound(f"{episode_id} not found", provider=self.name)
        return list(self.servers[episode_id])

    async def trending(self):
        self._called("trending")
        return list(self.titles.values())

    async def catalogue(self, page=1, genre=None, type=None):
        self._called("catalogue", page, genre, type)
        return list(self.titles.values()) if page == 1 else []

    async def random(self):
        self._called("random")
        return next(iter(self.titles.values()))

    async def genres(self):
        self._called("genres")
        return list(self.genre_names)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def _no_backoff(monkeypatch: pytest.MonkeyPatch):
    """Adapters read settings.base_delay at call time; keep retries instant."""
    monkeypatch.setattr(settings, "base_delay", 0.0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
