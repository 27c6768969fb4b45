"""Per-view content state: what a reader screen shows for one menu item."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from travelguide.errors import ErrorCode, TravelGuideError
from travelguide.loader import ContentSubscription
from travelguide.menu import region_summary

if TYPE_CHECKING:
    from travelguide.api import TravelGuideClient
    from travelguide.loader import ContentLoader
    from travelguide.models.content import ContentRecord
    from travelguide.models.country import Country, MenuItem

log = structlog.get_logger()

LANDING_PATH = "_landing.md"


class ContentViewer:
    """Holds ``content``/``loading``/``error`` for a single reader view.

    Each load opens a fresh subscription and closes the previous one, so a
    background refresh for a page the reader has left never lands here.
    Retries are always user-initiated through :meth:`retry`.

    PDF items are never loaded or cached: the view only carries ``pdf_url``.
    A country landing page that fails to load leaves ``regions`` set so the
    view can show a summary of the menu instead.
    """

    def __init__(self, loader: ContentLoader, api: TravelGuideClient | None = None) -> None:
        self._loader = loader
        self._api = api
        self._subscription: ContentSubscription | None = None
        self._target: tuple[str, str] | None = None
        self.content: ContentRecord | None = None
        self.loading = False
        self.error: TravelGuideError | None = None
        self.pdf_url: str | None = None
        self.regions: list[tuple[MenuItem, int]] | None = None

    @property
    def can_retry(self) -> bool:
        return self.error is not None and self._target is not None

    async def load(self, country_slug: str, content_path: str) -> ContentRecord | None:
        self._switch_subscription()
        self._target = (country_slug, content_path)
        self.loading = True
        self.error = None
        self.pdf_url = None
        self.regions = None
        try:
            self.content = await self._loader.load_content(
                country_slug, content_path, subscription=self._subscription
            )
        except TravelGuideError as exc:
            self.error = exc
            self.content = None
        finally:
            self.loading = False
        return self.content

    async def load_item(self, country_slug: str, item: MenuItem) -> ContentRecord | None:
        """Show a menu item: markdown goes through the cache, PDFs get a URL."""
        if item.content_type != "pdf":
            return await self.load(country_slug, item.content_path)

        if self._api is None:
            raise RuntimeError("ContentViewer needs a TravelGuideClient to show PDF items")
        self.close()
        self._target = None
        self.content = None
        self.error = None
        self.regions = None
        self.pdf_url = self._api.pdf_url(country_slug, item.content_path)
        return None

    async def load_landing(self, country: Country) -> ContentRecord | None:
        """Load the country's landing page, falling back to a region summary.

        A missing landing page is not an error. Other failures keep ``error``
        set for :meth:`retry` while still offering the summary.
        """
        path = country.landing_page or LANDING_PATH
        record = await self.load(country.slug, path)
        if record is not None:
            return record

        self.regions = region_summary(country.menu_items)
        cause = self.error.__cause__ if self.error is not None else None
        if isinstance(cause, TravelGuideError) and cause.code == ErrorCode.CONTENT_NOT_FOUND:
            log.debug("landing_page_missing", country=country.slug, path=path)
            self.error = None
        return None

    async def retry(self) -> ContentRecord | None:
        if self._target is None:
            return None
        return await self.load(*self._target)

    def apply_updates(self) -> bool:
        """Adopt any background-refreshed record. Returns True if content changed."""
        if self._subscription is None:
            return False
        changed = False
        while (record := self._subscription.get_nowait()) is not None:
            self.content = record
            changed = True
        if changed:
            log.debug("viewer_content_refreshed", key=self.content.cache_key)
        return changed

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    def _switch_subscription(self) -> None:
        self.close()
        self._subscription = ContentSubscription()
