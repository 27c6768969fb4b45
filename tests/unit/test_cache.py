"""Unit tests for travelguide.cache."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import aiosqlite
import pytest

from travelguide.errors import ErrorCode, TravelGuideError

if TYPE_CHECKING:
    from travelguide.cache import ContentCache

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


async def _age(cache: ContentCache, key: str, hours: float) -> None:
    """Backdate cached_at for a row by ``hours``."""
    past = (datetime.now(UTC) - timedelta(hours=hours)).isoformat(timespec="microseconds")
    await cache._db.execute(
        "UPDATE content_cache SET cached_at = ? WHERE cache_key = ?", (past, key)
    )
    await cache._db.commit()


async def _row_count(cache: ContentCache) -> int:
    cursor = await cache._db.execute("SELECT COUNT(*) FROM content_cache")
    row = await cursor.fetchone()
    return row[0]


def _break_db(cache: ContentCache) -> None:
    async def failing_execute(*args, **kwargs):
        raise aiosqlite.OperationalError("disk I/O error")

    cache._db.execute = failing_execute  # type: ignore[assignment]


# ---------------------------------------------------------------------------
# get / put
# ---------------------------------------------------------------------------


class TestGetPut:
    async def test_put_then_get_returns_stored_record(self, cache: ContentCache) -> None:
        await cache.put("italy", "rome.md", "# Rome", "v1", T0)

        entry = await cache.get("italy", "rome.md")
        assert entry is not None
        assert entry.country_slug == "italy"
        assert entry.content_path == "rome.md"
        assert entry.body == "# Rome"
        assert entry.version_tag == "v1"
        assert entry.last_modified == T0
        assert entry.cached_at <= datetime.now(UTC)

    async def test_get_nonexistent_returns_none(self, cache: ContentCache) -> None:
        assert await cache.get("italy", "missing.md") is None

    async def test_put_overwrites(self, cache: ContentCache) -> None:
        await cache.put("italy", "rome.md", "Version 1", "v1", T0)
        await cache.put("italy", "rome.md", "Version 2", "v2", T0 - timedelta(days=1))

        entry = await cache.get("italy", "rome.md")
        assert entry is not None
        assert entry.body == "Version 2"
        assert entry.version_tag == "v2"

    async def test_nested_paths_are_distinct_keys(self, cache: ContentCache) -> None:
        await cache.put("italy", "north/milan.md", "Milan", "a", T0)
        await cache.put("italy", "milan.md", "Other", "b", T0)

        nested = await cache.get("italy", "north/milan.md")
        assert nested is not None
        assert nested.body == "Milan"

    async def test_naive_last_modified_is_treated_as_utc(self, cache: ContentCache) -> None:
        record = await cache.put("italy", "rome.md", "x", "v1", datetime(2024, 5, 1, 12, 0))
        assert record.last_modified == T0


class TestExpiry:
    async def test_expired_entry_is_absent_and_removed(self, cache: ContentCache) -> None:
        await cache.put("italy", "rome.md", "# Rome", "v1", T0)
        await _age(cache, "italy/rome.md", hours=25)

        assert await cache.get("italy", "rome.md") is None
        # Deleted, not merely hidden
        assert await _row_count(cache) == 0

    async def test_entry_within_ttl_is_served(self, cache: ContentCache) -> None:
        await cache.put("italy", "rome.md", "# Rome", "v1", T0)
        await _age(cache, "italy/rome.md", hours=23)

        assert await cache.get("italy", "rome.md") is not None

    async def test_purge_expired_removes_only_old_rows(self, cache: ContentCache) -> None:
        await cache.put("italy", "rome.md", "old", "v1", T0)
        await cache.put("italy", "milan.md", "fresh", "v1", T0)
        await _age(cache, "italy/rome.md", hours=30)

        assert await cache.purge_expired() == 1
        assert await cache.get("italy", "milan.md") is not None
        assert await _row_count(cache) == 1


# ---------------------------------------------------------------------------
# put_if_unchanged
# ---------------------------------------------------------------------------


class TestPutIfUnchanged:
    async def test_writes_when_absent(self, cache: ContentCache) -> None:
        record = await cache.put_if_unchanged(
            "italy", "rome.md", "new", "v2", T0, expected_tag="v1"
        )
        assert record is not None
        assert (await cache.get("italy", "rome.md")).version_tag == "v2"

    async def test_writes_when_stored_tag_matches(self, cache: ContentCache) -> None:
        await cache.put("italy", "rome.md", "old", "v1", T0)
        record = await cache.put_if_unchanged(
            "italy", "rome.md", "new", "v2", T0 + timedelta(hours=1), expected_tag="v1"
        )
        assert record is not None
        assert (await cache.get("italy", "rome.md")).body == "new"

    async def test_earlier_last_modified_still_replaces(self, cache: ContentCache) -> None:
        # Server clocks and restores can move Last-Modified backwards.
        await cache.put("italy", "rome.md", "old", "v1", T0 + timedelta(hours=2))
        record = await cache.put_if_unchanged(
            "italy", "rome.md", "new", "v2", T0, expected_tag="v1"
        )

        assert record is not None
        entry = await cache.get("italy", "rome.md")
        assert entry is not None
        assert entry.version_tag == "v2"
        assert entry.last_modified == T0

    async def test_equal_last_modified_with_new_tag_replaces(self, cache: ContentCache) -> None:
        await cache.put("italy", "rome.md", "old", "v1", T0)
        record = await cache.put_if_unchanged(
            "italy", "rome.md", "new", "v2", T0, expected_tag="v1"
        )

        assert record is not None
        entry = await cache.get("italy", "rome.md")
        assert entry is not None
        assert entry.version_tag == "v2"
        assert entry.body == "new"

    async def test_keeps_row_replaced_by_another_write(self, cache: ContentCache) -> None:
        await cache.put("italy", "rome.md", "newest", "v3", T0)
        record = await cache.put_if_unchanged(
            "italy", "rome.md", "stale", "v2", T0 + timedelta(hours=2), expected_tag="v1"
        )

        assert record is None
        entry = await cache.get("italy", "rome.md")
        assert entry is not None
        assert entry.version_tag == "v3"
        assert entry.body == "newest"

    async def test_failure_raises_storage_unavailable(self, cache: ContentCache) -> None:
        _break_db(cache)
        with pytest.raises(TravelGuideError) as exc_info:
            await cache.put_if_unchanged("italy", "rome.md", "a", "v2", T0, expected_tag="v1")
        assert exc_info.value.code == ErrorCode.STORAGE_UNAVAILABLE


# ---------------------------------------------------------------------------
# invalidate / clear / stats
# ---------------------------------------------------------------------------


class TestInvalidate:
    async def test_single_key_removes_exactly_one(self, cache: ContentCache) -> None:
        await cache.put("italy", "rome.md", "a", "v1", T0)
        await cache.put("italy", "milan.md", "b", "v1", T0)

        assert await cache.invalidate("italy", "rome.md") == 1
        assert await cache.get("italy", "rome.md") is None
        assert await cache.get("italy", "milan.md") is not None

    async def test_country_removes_all_of_that_country_only(self, cache: ContentCache) -> None:
        await cache.put("italy", "rome.md", "a", "v1", T0)
        await cache.put("italy", "north/milan.md", "b", "v1", T0)
        await cache.put("france", "paris.md", "c", "v1", T0)

        assert await cache.invalidate("italy") == 2
        assert await cache.get("italy", "rome.md") is None
        assert await cache.get("italy", "north/milan.md") is None
        assert await cache.get("france", "paris.md") is not None

    async def test_country_prefix_does_not_match_other_country(self, cache: ContentCache) -> None:
        await cache.put("ital", "x.md", "a", "v1", T0)
        await cache.put("italy", "x.md", "b", "v1", T0)

        await cache.invalidate("ital")
        assert await cache.get("italy", "x.md") is not None

    async def test_invalidate_twice_is_idempotent(self, cache: ContentCache) -> None:
        await cache.put("italy", "rome.md", "a", "v1", T0)

        assert await cache.invalidate("italy", "rome.md") == 1
        assert await cache.invalidate("italy", "rome.md") == 0

    async def test_invalidate_unknown_country_is_noop(self, cache: ContentCache) -> None:
        assert await cache.invalidate("atlantis") == 0


class TestClearAndStats:
    async def test_clear_removes_everything(self, cache: ContentCache) -> None:
        await cache.put("italy", "rome.md", "a", "v1", T0)
        await cache.put("france", "paris.md", "b", "v1", T0)

        assert await cache.clear() == 2
        assert await _row_count(cache) == 0

    async def test_stats_empty(self, cache: ContentCache) -> None:
        stats = await cache.stats()
        assert stats.count == 0
        assert stats.approximate_bytes == 0

    async def test_stats_grows_with_body(self, cache: ContentCache) -> None:
        await cache.put("italy", "rome.md", "short", "v1", T0)
        small = await cache.stats()
        await cache.put("italy", "rome.md", "x" * 5000, "v1", T0)
        large = await cache.stats()

        assert small.count == large.count == 1
        assert large.approximate_bytes > small.approximate_bytes + 4000


# ---------------------------------------------------------------------------
# Storage failures
# ---------------------------------------------------------------------------


class TestStorageUnavailable:
    async def test_read_failure_raises_storage_unavailable(self, cache: ContentCache) -> None:
        _break_db(cache)
        with pytest.raises(TravelGuideError) as exc_info:
            await cache.get("italy", "rome.md")
        assert exc_info.value.code == ErrorCode.STORAGE_UNAVAILABLE
        assert exc_info.value.recoverable is True
        assert isinstance(exc_info.value.__cause__, aiosqlite.Error)

    async def test_write_failure_raises_storage_unavailable(self, cache: ContentCache) -> None:
        _break_db(cache)
        with pytest.raises(TravelGuideError) as exc_info:
            await cache.put("italy", "rome.md", "a", "v1", T0)
        assert exc_info.value.code == ErrorCode.STORAGE_UNAVAILABLE

    async def test_invalidate_failure_raises_storage_unavailable(
        self, cache: ContentCache
    ) -> None:
        _break_db(cache)
        with pytest.raises(TravelGuideError) as exc_info:
            await cache.invalidate("italy")
        assert exc_info.value.code == ErrorCode.STORAGE_UNAVAILABLE
