"""HTTP fetcher for content bodies.

Stateless wrapper over a shared ``httpx.AsyncClient``. The client is built
once by :func:`build_http_client` and owned by ``AppState``.
"""

from __future__ import annotations

from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING, Protocol
from urllib.parse import quote

import httpx
import structlog

from travelguide.errors import ErrorCode, TravelGuideError
from travelguide.models.content import FetchedContent

if TYPE_CHECKING:
    from travelguide.config import ApiSettings

log = structlog.get_logger()


class ContentSource(Protocol):
    """What the loader needs from a fetcher."""

    async def fetch(self, country_slug: str, content_path: str) -> FetchedContent: ...


def build_http_client(settings: ApiSettings) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.base_url.rstrip("/"),
        timeout=httpx.Timeout(settings.timeout_seconds),
        follow_redirects=True,
        headers={"User-Agent": "travelguide"},
    )


def content_url(country_slug: str, content_path: str) -> str:
    """Relative URL of a content resource; path separators are kept."""
    return _resource_url("content", country_slug, content_path)


def pdf_url(country_slug: str, content_path: str) -> str:
    return _resource_url("pdf", country_slug, content_path)


def _resource_url(kind: str, country_slug: str, content_path: str) -> str:
    return f"/{kind}/{quote(country_slug, safe='')}/{quote(content_path.lstrip('/'))}"


def parse_last_modified(value: str | None) -> datetime:
    """Parse a Last-Modified header (HTTP-date or ISO-8601).

    Falls back to the current time when the header is absent or unreadable.
    """
    if value:
        try:
            parsed = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            try:
                parsed = datetime.fromisoformat(value)
            except ValueError:
                log.debug("last_modified_unparseable", value=value)
                return datetime.now(UTC)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC)
    return datetime.now(UTC)


class ContentFetcher:
    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def fetch(self, country_slug: str, content_path: str) -> FetchedContent:
        """Fetch one content body.

        Raises ``TravelGuideError`` with ``CONTENT_NOT_FOUND`` on 404 and
        ``NETWORK_ERROR`` for every other failure.
        """
        url = content_url(country_slug, content_path)
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as exc:
            log.warning("fetch_network_error", url=url, error=str(exc))
            raise TravelGuideError(
                code=ErrorCode.NETWORK_ERROR,
                message=f"Network error fetching {country_slug}/{content_path}: {exc}",
                suggestion="Check your connection and try again.",
                recoverable=True,
            ) from exc

        if response.status_code == 404:
            raise TravelGuideError(
                code=ErrorCode.CONTENT_NOT_FOUND,
                message=f"Content not found: {country_slug}/{content_path}",
                suggestion="The page may have been moved or deleted.",
                recoverable=False,
            )
        if not response.is_success:
            log.warning("fetch_http_error", url=url, status_code=response.status_code)
            raise TravelGuideError(
                code=ErrorCode.NETWORK_ERROR,
                message=(
                    f"HTTP {response.status_code} fetching {country_slug}/{content_path}"
                ),
                suggestion="The server may be temporarily unavailable. Try again later.",
                recoverable=True,
            )

        log.debug("fetch_complete", url=url, bytes=len(response.content))
        return FetchedContent(
            body=response.text,
            version_tag=response.headers.get("etag", ""),
            last_modified=parse_last_modified(response.headers.get("last-modified")),
        )
