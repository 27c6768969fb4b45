"""Unit-specific fixtures (no I/O beyond in-memory SQLite)."""

from __future__ import annotations

import aiosqlite
import pytest

from travelguide.cache import ContentCache


@pytest.fixture()
async def cache():
    """In-memory SQLite cache for unit tests."""
    async with aiosqlite.connect(":memory:") as db:
        c = ContentCache(db, ttl_hours=24)
        await c.init_db()
        yield c
