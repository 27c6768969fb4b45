"""Client for the travel-guide backend: public reads and admin CRUD.

Content reads go through :class:`travelguide.loader.ContentLoader`; this
module covers everything else. Admin writes to content evict the matching
cache entries so the next read goes to the server.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx
import structlog

from travelguide.auth import AdminSession
from travelguide.errors import ErrorCode, TravelGuideError
from travelguide.fetcher import content_url
from travelguide.fetcher import pdf_url as relative_pdf_url
from travelguide.models.country import ColorPalette, Country, CountryDraft, MenuItem

if TYPE_CHECKING:
    from travelguide.cache import ContentCache

log = structlog.get_logger()

_PDF_MIME = "application/pdf"


class TravelGuideClient:
    def __init__(self, client: httpx.AsyncClient, cache: ContentCache | None = None) -> None:
        self._client = client
        self._cache = cache

    # ------------------------------------------------------------------
    # Public
    # ------------------------------------------------------------------

    async def list_countries(self) -> list[Country]:
        response = await self._send("GET", "/countries")
        self._raise_for_status(response, "fetch countries")
        return [Country.model_validate(item) for item in response.json()]

    async def get_country(self, slug: str) -> Country:
        response = await self._send("GET", f"/countries/{quote(slug, safe='')}")
        if response.status_code == 404:
            raise TravelGuideError(
                code=ErrorCode.COUNTRY_NOT_FOUND,
                message=f"Country not found: {slug}",
                suggestion="Pick a country from the list.",
                recoverable=False,
            )
        self._raise_for_status(response, "fetch country")
        return Country.model_validate(response.json())

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def login(self, password: str) -> AdminSession:
        """Exchange the admin secret for a session. Raises on rejection."""
        response = await self._send("POST", "/admin/login", json={"password": password})
        if response.status_code == 401:
            log.info("admin_login_rejected")
            raise TravelGuideError(
                code=ErrorCode.INVALID_CREDENTIALS,
                message="Invalid admin password",
                suggestion="Check the password and try again.",
                recoverable=False,
            )
        self._raise_for_status(response, "log in")
        log.info("admin_login_succeeded")
        return AdminSession(token=password)

    def logout(self, session: AdminSession) -> None:
        session.invalidate("logout")

    # ------------------------------------------------------------------
    # Countries
    # ------------------------------------------------------------------

    async def create_country(self, session: AdminSession, draft: CountryDraft) -> Country:
        response = await self._admin(session, "POST", "/admin/countries", json=draft.to_wire())
        self._raise_for_status(response, "create country")
        return Country.model_validate(response.json())

    async def update_country(
        self, session: AdminSession, slug: str, updates: dict[str, Any]
    ) -> Country:
        """Send a partial update. ``updates`` uses wire (camelCase) field names."""
        response = await self._admin(
            session, "PUT", f"/admin/countries/{quote(slug, safe='')}", json=updates
        )
        if response.status_code == 404:
            raise TravelGuideError(
                code=ErrorCode.COUNTRY_NOT_FOUND,
                message=f"Country not found: {slug}",
                recoverable=False,
            )
        self._raise_for_status(response, "update country")
        return Country.model_validate(response.json())

    async def update_menu_items(
        self, session: AdminSession, slug: str, menu_items: list[MenuItem]
    ) -> Country:
        return await self.update_country(
            session, slug, {"menuItems": [item.to_wire() for item in menu_items]}
        )

    async def update_palette(
        self, session: AdminSession, slug: str, palette: ColorPalette
    ) -> Country:
        return await self.update_country(session, slug, {"palette": palette.to_wire()})

    async def delete_country(self, session: AdminSession, slug: str) -> None:
        response = await self._admin(session, "DELETE", f"/admin/countries/{quote(slug, safe='')}")
        self._raise_for_status(response, "delete country")
        await self._evict(slug)

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    async def save_content(
        self, session: AdminSession, country_slug: str, content_path: str, markdown: str
    ) -> None:
        response = await self._admin(
            session,
            "PUT",
            "/admin" + content_url(country_slug, content_path),
            content=markdown.encode("utf-8"),
            headers={"Content-Type": "text/markdown"},
        )
        self._raise_for_status(response, "save content")
        await self._evict(country_slug, content_path)

    async def delete_content(
        self, session: AdminSession, country_slug: str, content_path: str
    ) -> None:
        response = await self._admin(
            session, "DELETE", "/admin" + content_url(country_slug, content_path)
        )
        self._raise_for_status(response, "delete content")
        await self._evict(country_slug, content_path)

    async def upload_document(
        self,
        session: AdminSession,
        country_slug: str,
        content_path: str,
        data: bytes,
        filename: str,
    ) -> str:
        """Upload a PDF. Returns the stored ``country/path.pdf`` location."""
        if not content_path.endswith(".pdf"):
            content_path = f"{content_path}.pdf"
        upload_path = content_url(country_slug, content_path).removeprefix("/content")
        response = await self._admin(
            session,
            "POST",
            "/admin/upload" + upload_path,
            files={"file": (filename, data, _PDF_MIME)},
        )
        if response.status_code == 400:
            raise TravelGuideError(
                code=ErrorCode.INVALID_INPUT,
                message=_error_message(response, "Upload rejected"),
                suggestion="Only PDF files are accepted.",
                recoverable=False,
            )
        self._raise_for_status(response, "upload file")
        await self._evict(country_slug, content_path)
        return response.json().get("path", f"{country_slug}/{content_path}")

    def pdf_url(self, country_slug: str, content_path: str) -> str:
        """Absolute URL a PDF reader can open directly. PDFs bypass the cache."""
        base = str(self._client.base_url).rstrip("/")
        return base + relative_pdf_url(country_slug, content_path)

    async def pdf_exists(self, country_slug: str, content_path: str) -> bool:
        response = await self._send("HEAD", relative_pdf_url(country_slug, content_path))
        if response.status_code == 404:
            return False
        self._raise_for_status(response, "check PDF")
        return True

    # ------------------------------------------------------------------

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            log.warning("api_network_error", method=method, url=url, error=str(exc))
            raise TravelGuideError(
                code=ErrorCode.NETWORK_ERROR,
                message=f"Network error on {method} {url}: {exc}",
                suggestion="Check your connection and try again.",
                recoverable=True,
            ) from exc

    async def _admin(
        self, session: AdminSession, method: str, url: str, **kwargs: Any
    ) -> httpx.Response:
        headers = {**kwargs.pop("headers", {}), **session.authorization_header()}
        response = await self._send(method, url, headers=headers, **kwargs)
        if response.status_code == 401:
            message = _error_message(response, "Unauthorized")
            session.invalidate(message)
            code = (
                ErrorCode.INVALID_CREDENTIALS
                if message == "Invalid credentials"
                else ErrorCode.UNAUTHORIZED
            )
            raise TravelGuideError(
                code=code,
                message=message,
                suggestion="Log in again.",
                recoverable=False,
            )
        return response

    async def _evict(self, country_slug: str, content_path: str | None = None) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.invalidate(country_slug, content_path)
        except TravelGuideError:
            # The write went through; a stale entry expires on its own.
            log.debug("cache_evict_skipped", country=country_slug, path=content_path)

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        log.warning("api_request_failed", action=action, status_code=response.status_code)
        detail = _error_message(response, f"HTTP {response.status_code}")
        raise TravelGuideError(
            code=ErrorCode.REQUEST_FAILED,
            message=f"Failed to {action}: {detail}",
            recoverable=response.status_code >= 500,
        )


def _error_message(response: httpx.Response, default: str) -> str:
    """The backend answers errors as ``{"error": "..."}``."""
    try:
        payload = response.json()
    except ValueError:
        return default
    if isinstance(payload, dict) and isinstance(payload.get("error"), str):
        return payload["error"]
    return default
