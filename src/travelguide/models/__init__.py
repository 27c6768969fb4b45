from __future__ import annotations

from travelguide.models.content import CacheStats, ContentRecord, FetchedContent, cache_key
from travelguide.models.country import (
    DEFAULT_PALETTE,
    ColorPalette,
    Country,
    CountryDraft,
    MenuItem,
)

__all__ = [
    # content
    "ContentRecord",
    "FetchedContent",
    "CacheStats",
    "cache_key",
    # country
    "Country",
    "CountryDraft",
    "MenuItem",
    "ColorPalette",
    "DEFAULT_PALETTE",
]
