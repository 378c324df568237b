"""
AnimeHub - Anime/Manga Aggregation API
FastAPI Backend
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from config import settings
from aggregator import Aggregator
from cache import ResponseCache
from errors import NotFound, ProviderError, ProviderUnavailable
from logging_setup import setup_logging
from models import (
    EpisodeListResponse,
    GenresResponse,
    SearchResponse,
    SourcesResponse,
    TitleResponse,
)
from registry import load_sources
from sources.base import ProviderAdapter

logger = logging.getLogger(__name__)


class CacheControlMiddleware(BaseHTTPMiddleware):
    """Add Cache-Control headers for stable GET endpoints."""

    CACHE_RULES = {
        "/anime/": 300,      # 5 min for titles & episode lists
        "/search": 120,      # 2 min for search results
        "/trending": 300,
        "/catalogue": 300,
        "/genres": 3600,
        "/sources": 3600,    # 1 hour for provider list
        "/episode/": 0,      # embed URLs expire, never cache
        "/random": 0,
    }

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        if request.method == "GET" and response.status_code == 200:
            path = request.url.path
            for prefix, max_age in self.CACHE_RULES.items():
                if path.startswith(prefix):
                    if max_age > 0 and response.headers.get("X-Degraded") != "true":
                        response.headers["Cache-Control"] = f"public, max-age={max_age}"
                    else:
                        response.headers["Cache-Control"] = "no-store"
                    break
        return response


def build_aggregators(
    sources: dict[str, ProviderAdapter],
    cache: ResponseCache | None,
) -> dict[str, Aggregator]:
    media_info = sources.get("jikan")
    return {
        name: Aggregator(source, media_info=media_info, cache=cache)
        for name, source in sources.items()
    }


def create_app(
    sources: dict[str, ProviderAdapter] | None = None,
    cache: ResponseCache | None = None,
    default_provider: str = settings.catalog_provider,
) -> FastAPI:
    if sources is None:
        sources = load_sources()
    if cache is None:
        cache = ResponseCache()
    aggregators = build_aggregators(sources, cache)
    if default_provider not in aggregators and aggregators:
        fallback_name = next(iter(aggregators))
        logger.warning("Provider '%s' not loaded, defaulting to '%s'", default_provider, fallback_name)
        default_provider = fallback_name

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        for aggregator in aggregators.values():
            await aggregator.close()

    app = FastAPI(title="AnimeHub API", version="0.2.0", lifespan=lifespan)
    app.state.aggregators = aggregators
    app.state.default_provider = default_provider

    app.add_middleware(CacheControlMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ProviderError)
    async def provider_error_handler(request: Request, exc: ProviderError):
        if isinstance(exc, NotFound):
            status = 404
            kind = exc.kind
        else:
            # anything else reaching here has exhausted every fallback
            status = 503
            kind = ProviderUnavailable.kind
        return JSONResponse(status_code=status, content={"error": kind, "detail": str(exc)})

    def get_aggregator(provider: Optional[str]) -> Aggregator:
        name = provider or app.state.default_provider
        if name not in aggregators:
            raise HTTPException(404, f"Source '{name}' not found")
        return aggregators[name]

    # --- API Routes ---

    @app.get("/")
    def root():
        return {"status": "ok", "sources": list(aggregators.keys()), "default": app.state.default_provider}

    @app.get("/sources")
    def list_sources():
        """List all available providers."""
        return [
            {"name": a.provider.name, "language": a.provider.language, "base_url": a.provider.base_url}
            for a in aggregators.values()
        ]

    @app.get("/search", response_model=SearchResponse)
    async def search(q: str = Query(""), provider: Optional[str] = None):
        """Search titles. Queries shorter than 3 characters return no results."""
        result = await get_aggregator(provider).search(q)
        return JSONResponse(result.model_dump(mode="json"), headers=_headers(result))

    @app.get("/trending", response_model=SearchResponse)
    async def trending(provider: Optional[str] = None):
        result = await get_aggregator(provider).trending()
        return JSONResponse(result.model_dump(mode="json"), headers=_headers(result))

    @app.get("/catalogue", response_model=SearchResponse)
    async def catalogue(
        page: int = Query(1, ge=1),
        genre: Optional[str] = None,
        type: Optional[str] = None,
        provider: Optional[str] = None,
    ):
        result = await get_aggregator(provider).catalogue(page, genre, type)
        return JSONResponse(result.model_dump(mode="json"), headers=_headers(result))

    @app.get("/random", response_model=TitleResponse)
    async def random_title(provider: Optional[str] = None):
        result = await get_aggregator(provider).random()
        return JSONResponse(result.model_dump(mode="json"), headers=_headers(result))

    @app.get("/genres", response_model=GenresResponse)
    async def genres(provider: Optional[str] = None):
        result = await get_aggregator(provider).genres()
        return JSONResponse(result.model_dump(mode="json"), headers=_headers(result))

    @app.get("/anime/{provider}/{title_id}", response_model=TitleResponse)
    async def get_title(provider: str, title_id: str):
        """Title details (cover, synopsis, seasons...)."""
        result = await get_aggregator(provider).resolve_title(title_id)
        return JSONResponse(result.model_dump(mode="json"), headers=_headers(result))

    @app.get("/anime/{provider}/{title_id}/seasons/{season}", response_model=EpisodeListResponse)
    async def get_season_episodes(
        provider: str,
        title_id: str,
        season: int,
        language: str = Query("vostfr"),
    ):
        """Episode list of one season; falls back to another language if needed."""
        if season < 1:
            raise HTTPException(400, "season must be >= 1")
        result = await get_aggregator(provider).resolve_season_episodes(title_id, season, language)
        return JSONResponse(result.model_dump(mode="json"), headers=_headers(result))

    @app.get("/episode/{provider}/{episode_id}/sources", response_model=SourcesResponse)
    async def get_episode_sources(provider: str, episode_id: str, server: Optional[int] = None):
        """Playable mirrors for an episode, with the selected server index."""
        result = await get_aggregator(provider).resolve_playable_sources(episode_id, server)
        return JSONResponse(result.model_dump(mode="json"), headers=_headers(result))

    return app


def _headers(result) -> dict[str, str]:
    return {"X-Degraded": "true"} if result.degraded else {}


setup_logging(settings.log_level)
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
