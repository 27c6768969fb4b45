from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class FetchedContent(BaseModel):
    """A content body as returned by the backend."""

    model_config = ConfigDict(frozen=True)

    body: str  # Markdown text, or the PDF URL payload
    version_tag: str  # ETag header, "" when the server sent none
    last_modified: datetime


class ContentRecord(BaseModel):
    """Cached content for a single (country, path) pair."""

    model_config = ConfigDict(frozen=True)

    country_slug: str
    content_path: str
    body: str
    version_tag: str
    last_modified: datetime
    cached_at: datetime

    @property
    def cache_key(self) -> str:
        return cache_key(self.country_slug, self.content_path)


class CacheStats(BaseModel):
    count: int
    approximate_bytes: int


def cache_key(country_slug: str, content_path: str) -> str:
    return f"{country_slug}/{content_path}"
