"""SQLite content cache with lazy TTL expiry.

Every storage failure is logged and re-raised as a ``TravelGuideError`` with
code ``STORAGE_UNAVAILABLE``. The cache never decides on its own that a failure
is harmless: read paths in :mod:`travelguide.loader` treat it as a miss, write
paths log it and keep the fetched content.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta

import aiosqlite
import structlog

from travelguide.errors import ErrorCode, TravelGuideError
from travelguide.models.content import CacheStats, ContentRecord, cache_key

log = structlog.get_logger()

_CREATE_CONTENT_TABLE = """
CREATE TABLE IF NOT EXISTS content_cache (
    cache_key     TEXT PRIMARY KEY,
    country_slug  TEXT NOT NULL,
    content_path  TEXT NOT NULL,
    body          TEXT NOT NULL,
    version_tag   TEXT NOT NULL,
    last_modified TEXT NOT NULL,
    cached_at     TEXT NOT NULL
)
"""

_CREATE_COUNTRY_INDEX = (
    "CREATE INDEX IF NOT EXISTS idx_content_country ON content_cache(country_slug)"
)

_COLUMNS = "country_slug, content_path, body, version_tag, last_modified, cached_at"

_UPSERT = (
    f"INSERT INTO content_cache (cache_key, {_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?) "
    "ON CONFLICT(cache_key) DO UPDATE SET "
    "body = excluded.body, version_tag = excluded.version_tag, "
    "last_modified = excluded.last_modified, cached_at = excluded.cached_at"
)

# Compare-and-swap: only replace a row still holding the expected version tag.
_UPSERT_IF_UNCHANGED = _UPSERT + " WHERE content_cache.version_tag = ?"


def _to_db(value: datetime) -> str:
    """Fixed-width UTC ISO string so that SQL text comparison orders by time."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _storage_error(operation: str) -> TravelGuideError:
    return TravelGuideError(
        code=ErrorCode.STORAGE_UNAVAILABLE,
        message=f"Content cache unavailable during {operation}",
        suggestion="Content will be fetched from the server instead.",
        recoverable=True,
    )


class ContentCache:
    """SQLite-backed content cache keyed by ``country_slug/content_path``."""

    def __init__(self, db: aiosqlite.Connection, ttl_hours: int = 24) -> None:
        self._db = db
        self._ttl = timedelta(hours=ttl_hours)

    async def init_db(self) -> None:
        """Create the table and country index. Called once at startup."""
        try:
            await self._db.execute("PRAGMA journal_mode = WAL")
            await self._db.execute(_CREATE_CONTENT_TABLE)
            await self._db.execute(_CREATE_COUNTRY_INDEX)
            await self._db.commit()
        except aiosqlite.Error as exc:
            log.error("cache_init_error", exc_info=True)
            raise _storage_error("init") from exc

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, country_slug: str, content_path: str) -> ContentRecord | None:
        """Return the record, or ``None`` when absent or older than the TTL.

        Expired rows are deleted here; there is no background sweep.
        """
        key = cache_key(country_slug, content_path)
        try:
            cursor = await self._db.execute(
                f"SELECT {_COLUMNS} FROM content_cache WHERE cache_key = ?",
                (key,),
            )
            row = await cursor.fetchone()
            if row is None:
                return None

            record = ContentRecord(
                country_slug=row[0],
                content_path=row[1],
                body=row[2],
                version_tag=row[3],
                last_modified=datetime.fromisoformat(row[4]),
                cached_at=datetime.fromisoformat(row[5]),
            )
            if datetime.now(UTC) - record.cached_at > self._ttl:
                await self._db.execute("DELETE FROM content_cache WHERE cache_key = ?", (key,))
                await self._db.commit()
                log.debug("cache_entry_expired", key=key)
                return None
            return record
        except aiosqlite.Error as exc:
            log.warning("cache_read_error", key=key, exc_info=True)
            raise _storage_error("read") from exc

    async def stats(self) -> CacheStats:
        """Record count and an estimate of their serialised size in bytes."""
        try:
            cursor = await self._db.execute(f"SELECT {_COLUMNS} FROM content_cache")
            rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            log.warning("cache_stats_error", exc_info=True)
            raise _storage_error("stats") from exc

        size = 0
        for row in rows:
            item = {
                "countrySlug": row[0],
                "contentPath": row[1],
                "body": row[2],
                "versionTag": row[3],
                "lastModified": row[4],
                "cachedAt": row[5],
            }
            size += len(json.dumps(item).encode("utf-8"))
        return CacheStats(count=len(rows), approximate_bytes=size)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def put(
        self,
        country_slug: str,
        content_path: str,
        body: str,
        version_tag: str,
        last_modified: datetime,
    ) -> ContentRecord:
        """Unconditionally upsert a record with ``cached_at = now``."""
        record = self._record(country_slug, content_path, body, version_tag, last_modified)
        try:
            await self._db.execute(_UPSERT, self._params(record))
            await self._db.commit()
        except aiosqlite.Error as exc:
            log.warning("cache_write_error", key=record.cache_key, exc_info=True)
            raise _storage_error("write") from exc
        return record

    async def put_if_unchanged(
        self,
        country_slug: str,
        content_path: str,
        body: str,
        version_tag: str,
        last_modified: datetime,
        expected_tag: str,
    ) -> ContentRecord | None:
        """Upsert only if the stored row still carries ``expected_tag``.

        A missing row is written. Returns the written record, or ``None`` if
        another write replaced the row since ``expected_tag`` was read. Used by
        background revalidation so a slow response cannot clobber a record
        written by a later load; no clock comparison is involved.
        """
        record = self._record(country_slug, content_path, body, version_tag, last_modified)
        try:
            cursor = await self._db.execute(
                _UPSERT_IF_UNCHANGED, (*self._params(record), expected_tag)
            )
            written = cursor.rowcount > 0
            await self._db.commit()
        except aiosqlite.Error as exc:
            log.warning("cache_write_error", key=record.cache_key, exc_info=True)
            raise _storage_error("write") from exc

        if not written:
            log.debug("cache_write_skipped_superseded", key=record.cache_key)
            return None
        return record

    async def invalidate(self, country_slug: str, content_path: str | None = None) -> int:
        """Delete one record, or every record of a country when no path is given.

        Returns the number of rows removed. Missing rows are not an error.
        """
        try:
            if content_path is not None:
                cursor = await self._db.execute(
                    "DELETE FROM content_cache WHERE cache_key = ?",
                    (cache_key(country_slug, content_path),),
                )
            else:
                cursor = await self._db.execute(
                    "DELETE FROM content_cache WHERE country_slug = ?", (country_slug,)
                )
            deleted = cursor.rowcount
            await self._db.commit()
        except aiosqlite.Error as exc:
            log.warning("cache_invalidate_error", country=country_slug, exc_info=True)
            raise _storage_error("invalidate") from exc

        log.info(
            "cache_invalidated", country=country_slug, path=content_path, deleted=deleted
        )
        return deleted

    async def clear(self) -> int:
        """Delete every record."""
        try:
            cursor = await self._db.execute("DELETE FROM content_cache")
            deleted = cursor.rowcount
            await self._db.commit()
        except aiosqlite.Error as exc:
            log.warning("cache_clear_error", exc_info=True)
            raise _storage_error("clear") from exc

        log.info("cache_cleared", deleted=deleted)
        return deleted

    async def purge_expired(self) -> int:
        """Delete all rows older than the TTL. Run once at startup."""
        cutoff = _to_db(datetime.now(UTC) - self._ttl)
        try:
            cursor = await self._db.execute(
                "DELETE FROM content_cache WHERE cached_at < ?", (cutoff,)
            )
            deleted = cursor.rowcount
            await self._db.commit()
        except aiosqlite.Error as exc:
            log.warning("cache_cleanup_error", exc_info=True)
            raise _storage_error("cleanup") from exc

        log.info("cache_cleanup_complete", deleted=deleted)
        return deleted

    # ------------------------------------------------------------------

    @staticmethod
    def _record(
        country_slug: str,
        content_path: str,
        body: str,
        version_tag: str,
        last_modified: datetime,
    ) -> ContentRecord:
        return ContentRecord(
            country_slug=country_slug,
            content_path=content_path,
            body=body,
            version_tag=version_tag,
            last_modified=datetime.fromisoformat(_to_db(last_modified)),
            cached_at=datetime.now(UTC),
        )

    @staticmethod
    def _params(record: ContentRecord) -> tuple[str, ...]:
        return (
            record.cache_key,
            record.country_slug,
            record.content_path,
            record.body,
            record.version_tag,
            _to_db(record.last_modified),
            _to_db(record.cached_at),
        )
