"""Menu tree helpers: display order, lookup and admin reordering."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

    from travelguide.models.country import MenuItem


def sorted_menu(items: list[MenuItem]) -> list[MenuItem]:
    """Return the tree sorted by ``order`` at every level.

    ``sorted`` is stable, so siblings with equal ``order`` keep insertion order.
    """
    result = []
    for item in sorted(items, key=lambda i: i.order):
        if item.children:
            item = item.model_copy(update={"children": sorted_menu(item.children)})
        result.append(item)
    return result


def iter_menu(items: list[MenuItem]) -> Iterator[MenuItem]:
    """Depth-first walk in display order."""
    for item in sorted_menu(items):
        yield item
        if item.children:
            yield from iter_menu(item.children)


def find_menu_item(items: list[MenuItem], key: str) -> MenuItem | None:
    """First item, in display order, whose slug or content path is ``key``."""
    for item in iter_menu(items):
        if key in (item.slug, item.content_path):
            return item
    return None


def region_summary(items: list[MenuItem]) -> list[tuple[MenuItem, int]]:
    """Top-level regions in display order with their number of children."""
    regions = sorted((i for i in items if i.type == "region"), key=lambda i: i.order)
    return [(region, len(region.children or [])) for region in regions]


def reorder(items: list[MenuItem], source: int, destination: int) -> list[MenuItem]:
    """Move one sibling from ``source`` to ``destination`` (indices in display
    order) and renumber ``order`` to 0..n-1."""
    ordered = sorted(items, key=lambda i: i.order)
    if not (0 <= source < len(ordered)) or not (0 <= destination < len(ordered)):
        raise IndexError(f"Cannot move item {source} to {destination} in {len(ordered)} items")
    moved = ordered.pop(source)
    ordered.insert(destination, moved)
    return [item.model_copy(update={"order": index}) for index, item in enumerate(ordered)]


def append_item(items: list[MenuItem], item: MenuItem) -> list[MenuItem]:
    """Add ``item`` at the end of its siblings."""
    return [*items, item.model_copy(update={"order": len(items)})]
