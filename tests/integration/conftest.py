"""Integration test fixtures.

Provides a fully wired AppState backed by a temporary SQLite file. HTTP is
mocked per test with respx.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from travelguide.config import Settings
from travelguide.state import open_app_state

if TYPE_CHECKING:
    from pathlib import Path

    from travelguide.state import AppState

BASE = "https://guide.test"


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        api={"base_url": BASE},
        cache={"db_path": str(tmp_path / "nested" / "cache.db")},
    )


@pytest.fixture()
async def app_state(settings: Settings) -> AppState:
    async with open_app_state(settings) as state:
        yield state
