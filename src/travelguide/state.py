"""Application state: every long-lived component, built once per process."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite
import structlog

from travelguide.api import TravelGuideClient
from travelguide.cache import ContentCache
from travelguide.errors import TravelGuideError
from travelguide.fetcher import ContentFetcher, build_http_client
from travelguide.loader import ContentLoader

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    import httpx

    from travelguide.config import Settings

log = structlog.get_logger()


@dataclass
class AppState:
    settings: Settings
    http_client: httpx.AsyncClient
    cache: ContentCache
    fetcher: ContentFetcher
    loader: ContentLoader
    api: TravelGuideClient


@asynccontextmanager
async def open_app_state(settings: Settings) -> AsyncIterator[AppState]:
    """Open the cache database and HTTP client; tear both down on exit.

    Missing parent directories of ``cache.db_path`` are created. A database
    that cannot be opened at all is fatal.
    """
    db_path = settings.cache.db_path
    if db_path != ":memory:":
        path = Path(db_path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        db_path = str(path)

    async with aiosqlite.connect(db_path) as db:
        cache = ContentCache(db, ttl_hours=settings.cache.ttl_hours)
        await cache.init_db()
        try:
            await cache.purge_expired()
        except TravelGuideError:
            log.warning("startup_cleanup_skipped")

        async with build_http_client(settings.api) as client:
            fetcher = ContentFetcher(client)
            loader = ContentLoader(cache, fetcher)
            state = AppState(
                settings=settings,
                http_client=client,
                cache=cache,
                fetcher=fetcher,
                loader=loader,
                api=TravelGuideClient(client, cache),
            )
            log.info("app_state_ready", db_path=db_path, api=settings.api.base_url)
            try:
                yield state
            finally:
                await loader.aclose()
