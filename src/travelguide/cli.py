"""``travelguide`` command-line entry point.

    travelguide countries
    travelguide menu italy
    travelguide read italy
    travelguide read italy rome.md
    travelguide cache stats | clear | invalidate italy [rome.md]
    travelguide admin save italy rome.md ./rome.md
    travelguide admin upload italy maps/rome ./rome.pdf
    travelguide admin delete italy rome.md

Admin commands read the password from ``--password`` or
``TRAVELGUIDE_ADMIN_PASSWORD``.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from travelguide.config import Settings
from travelguide.errors import ErrorCode, TravelGuideError
from travelguide.logging_config import setup_logging
from travelguide.menu import find_menu_item, sorted_menu
from travelguide.state import open_app_state
from travelguide.viewer import ContentViewer

if TYPE_CHECKING:
    from travelguide.models.country import Country, MenuItem
    from travelguide.state import AppState

log = structlog.get_logger()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="travelguide", description="Travel guide client.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("countries", help="List countries")

    menu = sub.add_parser("menu", help="Show a country's menu tree")
    menu.add_argument("country")

    read = sub.add_parser("read", help="Print a content page, or the country landing page")
    read.add_argument("country")
    read.add_argument("path", nargs="?", help="Menu item slug or content path")
    read.add_argument(
        "--no-wait",
        action="store_true",
        help="Do not wait for the background freshness check",
    )

    cache = sub.add_parser("cache", help="Inspect or clear the local content cache")
    cache_sub = cache.add_subparsers(dest="cache_command", required=True)
    cache_sub.add_parser("stats")
    cache_sub.add_parser("clear")
    invalidate = cache_sub.add_parser("invalidate")
    invalidate.add_argument("country")
    invalidate.add_argument("path", nargs="?")

    admin = sub.add_parser("admin", help="Edit content (requires the admin password)")
    admin.add_argument("--password", default=os.getenv("TRAVELGUIDE_ADMIN_PASSWORD"))
    admin_sub = admin.add_subparsers(dest="admin_command", required=True)
    save = admin_sub.add_parser("save", help="Upload markdown from a file")
    save.add_argument("country")
    save.add_argument("path")
    save.add_argument("file", type=Path)
    upload = admin_sub.add_parser("upload", help="Upload a PDF")
    upload.add_argument("country")
    upload.add_argument("path")
    upload.add_argument("file", type=Path)
    delete = admin_sub.add_parser("delete", help="Delete a content page")
    delete.add_argument("country")
    delete.add_argument("path")

    return parser


def _print_menu(items: list[MenuItem], depth: int = 0) -> None:
    for item in sorted_menu(items):
        print(f"{'  ' * depth}- [{item.type}] {item.title} ({item.content_path})")
        if item.children:
            _print_menu(item.children, depth + 1)


def _print_landing(country: Country, regions: list[tuple[MenuItem, int]]) -> None:
    print(f"Welcome to {country.name}")
    print("Select a location from the menu to explore.")
    for region, children in regions:
        print(f"- {region.title}" + (f" ({children} cities)" if children else ""))


async def _lookup_item(state: AppState, country_slug: str, key: str) -> MenuItem | None:
    """Find the menu item behind ``key``. Cached markdown stays readable offline."""
    try:
        country = await state.api.get_country(country_slug)
    except TravelGuideError as exc:
        if not exc.recoverable:
            raise
        log.warning("menu_unavailable", country=country_slug, cause=exc.code.value)
        return None
    return find_menu_item(country.menu_items, key)


async def _read(state: AppState, country_slug: str, key: str | None, wait: bool) -> None:
    viewer = ContentViewer(state.loader, state.api)
    country = None
    try:
        if key is None:
            country = await state.api.get_country(country_slug)
            await viewer.load_landing(country)
        else:
            item = await _lookup_item(state, country_slug, key)
            if item is not None and item.content_type == "pdf":
                if not await state.api.pdf_exists(country_slug, item.content_path):
                    raise TravelGuideError(
                        code=ErrorCode.CONTENT_NOT_FOUND,
                        message=f"PDF not found: {country_slug}/{item.content_path}",
                        recoverable=False,
                    )
                await viewer.load_item(country_slug, item)
                print(viewer.pdf_url)
                return
            await viewer.load(country_slug, item.content_path if item else key)

        if country is not None and viewer.content is None:
            if viewer.error is not None:
                log.warning("landing_page_unavailable", country=country_slug)
            _print_landing(country, viewer.regions or [])
            return
        if viewer.content is None:
            raise viewer.error or TravelGuideError(
                code=ErrorCode.CONTENT_LOAD_FAILED,
                message=f"No content for {country_slug}/{key}",
            )
        if wait:
            await state.loader.wait_idle()
            if viewer.apply_updates():
                log.info("content_updated_from_server", country=country_slug, path=key)
        print(viewer.content.body)
    finally:
        viewer.close()


async def _admin(state: AppState, args: argparse.Namespace) -> None:
    if not args.password:
        raise TravelGuideError(
            code=ErrorCode.UNAUTHORIZED,
            message="No admin password given",
            suggestion="Pass --password or set TRAVELGUIDE_ADMIN_PASSWORD.",
        )
    session = await state.api.login(args.password)
    try:
        if args.admin_command == "save":
            markdown = args.file.read_text(encoding="utf-8")
            await state.api.save_content(session, args.country, args.path, markdown)
            print(f"Saved {args.country}/{args.path}")
        elif args.admin_command == "upload":
            stored = await state.api.upload_document(
                session, args.country, args.path, args.file.read_bytes(), args.file.name
            )
            print(f"Uploaded {stored}")
        elif args.admin_command == "delete":
            await state.api.delete_content(session, args.country, args.path)
            print(f"Deleted {args.country}/{args.path}")
    finally:
        state.api.logout(session)


async def _run(args: argparse.Namespace, settings: Settings) -> None:
    async with open_app_state(settings) as state:
        if args.command == "countries":
            for country in await state.api.list_countries():
                print(f"{country.slug}\t{country.name}")
        elif args.command == "menu":
            country = await state.api.get_country(args.country)
            print(country.name)
            _print_menu(country.menu_items)
        elif args.command == "read":
            await _read(state, args.country, args.path, wait=not args.no_wait)
        elif args.command == "cache":
            if args.cache_command == "stats":
                stats = await state.cache.stats()
                print(json.dumps(stats.model_dump()))
            elif args.cache_command == "clear":
                print(f"Removed {await state.cache.clear()} entries")
            elif args.cache_command == "invalidate":
                removed = await state.cache.invalidate(args.country, args.path)
                print(f"Removed {removed} entries")
        elif args.command == "admin":
            await _admin(state, args)


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = Settings()
    setup_logging(settings.logging)
    try:
        asyncio.run(_run(args, settings))
    except TravelGuideError as exc:
        print(json.dumps(exc.to_dict()), file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
