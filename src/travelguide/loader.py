"""Stale-while-revalidate content loading.

A cache hit is returned at once and a background task re-fetches the same
resource. When the server's version tag differs, the fresh record is written
with :meth:`ContentCache.put_if_unchanged` and pushed to the caller's
:class:`ContentSubscription`. Background failures are logged and dropped: the
caller already has something to read.

A miss fetches synchronously. Fetch failures surface as ``CONTENT_LOAD_FAILED``
and nothing is cached.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from travelguide.errors import ErrorCode, TravelGuideError
from travelguide.models.content import ContentRecord

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from travelguide.cache import ContentCache
    from travelguide.fetcher import ContentSource

log = structlog.get_logger()


class ContentSubscription:
    """Notification channel for records refreshed in the background.

    Iterate it (``async for record in subscription``) to receive updates.
    Closing it only detaches the subscriber: a revalidation already in flight
    still finishes and writes the cache, its notification is dropped.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[ContentRecord | None] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def notify(self, record: ContentRecord) -> bool:
        """Queue an update. Returns False (and does nothing) once closed."""
        if self._closed:
            return False
        self._queue.put_nowait(record)
        return True

    def get_nowait(self) -> ContentRecord | None:
        """Pop a pending update without waiting, or ``None`` if there is none."""
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Wake any consumer blocked in __anext__
        self._queue.put_nowait(None)

    def __aiter__(self) -> AsyncIterator[ContentRecord]:
        return self

    async def __anext__(self) -> ContentRecord:
        record = await self._queue.get()
        if record is None:
            raise StopAsyncIteration
        return record


class ContentLoader:
    def __init__(self, cache: ContentCache, fetcher: ContentSource) -> None:
        self._cache = cache
        self._fetcher = fetcher
        self._tasks: set[asyncio.Task[None]] = set()

    async def load_content(
        self,
        country_slug: str,
        content_path: str,
        subscription: ContentSubscription | None = None,
    ) -> ContentRecord:
        cached = await self._read_cache(country_slug, content_path)
        if cached is not None:
            log.debug("content_cache_hit", country=country_slug, path=content_path)
            self._schedule_revalidation(cached, subscription)
            return cached

        try:
            fresh = await self._fetcher.fetch(country_slug, content_path)
        except TravelGuideError as exc:
            log.info(
                "content_load_failed",
                country=country_slug,
                path=content_path,
                cause=exc.code.value,
            )
            raise TravelGuideError(
                code=ErrorCode.CONTENT_LOAD_FAILED,
                message=exc.message,
                suggestion=exc.suggestion,
                recoverable=exc.code != ErrorCode.CONTENT_NOT_FOUND,
            ) from exc

        try:
            return await self._cache.put(
                country_slug, content_path, fresh.body, fresh.version_tag, fresh.last_modified
            )
        except TravelGuideError:
            # Already logged by the cache; the content itself is fine.
            return ContentRecord(
                country_slug=country_slug,
                content_path=content_path,
                body=fresh.body,
                version_tag=fresh.version_tag,
                last_modified=fresh.last_modified,
                cached_at=datetime.now(UTC),
            )

    async def wait_idle(self) -> None:
        """Wait for every in-flight revalidation to settle."""
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel outstanding revalidations. Called at shutdown."""
        for task in self._tasks:
            task.cancel()
        await self.wait_idle()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    # ------------------------------------------------------------------

    async def _read_cache(self, country_slug: str, content_path: str) -> ContentRecord | None:
        try:
            return await self._cache.get(country_slug, content_path)
        except TravelGuideError:
            # Storage trouble reads as a miss.
            return None

    def _schedule_revalidation(
        self, cached: ContentRecord, subscription: ContentSubscription | None
    ) -> None:
        task = asyncio.create_task(self._revalidate(cached, subscription))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _revalidate(
        self, cached: ContentRecord, subscription: ContentSubscription | None
    ) -> None:
        country_slug, content_path = cached.country_slug, cached.content_path
        try:
            fresh = await self._fetcher.fetch(country_slug, content_path)
            if fresh.version_tag == cached.version_tag:
                log.debug("content_unchanged", country=country_slug, path=content_path)
                return

            record = await self._cache.put_if_unchanged(
                country_slug,
                content_path,
                fresh.body,
                fresh.version_tag,
                fresh.last_modified,
                expected_tag=cached.version_tag,
            )
        except Exception:
            # The reader already has content; a failed refresh is never surfaced.
            log.debug(
                "content_revalidation_failed",
                country=country_slug,
                path=content_path,
                exc_info=True,
            )
            return

        if record is None:
            return
        log.info(
            "content_revalidated",
            country=country_slug,
            path=content_path,
            version_tag=record.version_tag,
        )
        if subscription is not None:
            subscription.notify(record)
