"""Ordering rules and derived read views over a snapshot.

Every sort in the package goes through ``display_key`` or ``pinned_key`` so the
``order``/``created_at`` fallback is applied in exactly one place.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

from .config import ALL_CATEGORY_ID

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Callable, Iterable, Sequence

    from .models import Category, LinkItem, Snapshot

T = TypeVar("T")


def effective_order(link: LinkItem) -> int:
    """Return the display sort value: ``order`` if set, else ``created_at``."""
    return link.order if link.order is not None else link.created_at


def display_key(link: LinkItem) -> tuple[int, str]:
    """Total ascending display key; ``id`` breaks ties."""
    return (effective_order(link), link.id)


def pinned_key(link: LinkItem) -> tuple[int, int, str]:
    """Pinned view key: explicit ``pinned_order`` first, then creation time."""
    if link.pinned_order is not None:
        return (0, link.pinned_order, link.id)
    return (1, link.created_at, link.id)


def sort_for_display(links: Iterable[LinkItem]) -> list[LinkItem]:
    """Sort links ascending by effective order."""
    return sorted(links, key=display_key)


def pinned_links(links: Iterable[LinkItem]) -> list[LinkItem]:
    """Return pinned links in pinned order."""
    return sorted((link for link in links if link.pinned), key=pinned_key)


def matches_query(link: LinkItem, query: str) -> bool:
    """Case-insensitive search over title, url and description."""
    needle = query.strip().lower()
    if not needle:
        return True
    return (
        needle in link.title.lower()
        or needle in link.url.lower()
        or bool(link.description and needle in link.description.lower())
    )


def filter_links(
    links: Iterable[LinkItem],
    category_id: str = ALL_CATEGORY_ID,
    query: str = "",
) -> list[LinkItem]:
    """Filter by category (``"all"`` keeps everything) and search query."""
    return [
        link
        for link in links
        if (category_id == ALL_CATEGORY_ID or link.category_id == category_id)
        and matches_query(link, query)
    ]


def displayed_links(
    snapshot: Snapshot,
    category_id: str = ALL_CATEGORY_ID,
    query: str = "",
) -> list[LinkItem]:
    """The main list view: filtered, then sorted for display."""
    return sort_for_display(filter_links(snapshot.links, category_id, query))


def sorted_categories(categories: Sequence[Category]) -> list[Category]:
    """Categories by ``order`` weight, falling back to stored position."""
    indexed = list(enumerate(categories))
    indexed.sort(key=lambda pair: (pair[1].order if pair[1].order is not None else pair[0], pair[0]))
    return [category for _, category in indexed]


def reorder(
    sequence: Sequence[T],
    moved_id: str,
    target_id: str,
    key: Callable[[T], str] = lambda item: item.id,  # type: ignore[attr-defined]
) -> list[T]:
    """Move *moved_id* to the index currently held by *target_id*.

    Dragging downwards lands after the target, dragging upwards lands before it.
    Returns an unchanged copy when the ids are equal or either one is missing.
    """
    items = list(sequence)
    ids = [key(item) for item in items]
    if moved_id == target_id or moved_id not in ids or target_id not in ids:
        return items
    old_index = ids.index(moved_id)
    new_index = ids.index(target_id)
    items.insert(new_index, items.pop(old_index))
    return items


def renumber(links: Sequence[LinkItem], field: str = "order") -> dict[str, LinkItem]:
    """Assign ``field = 0..n-1`` following the given sequence, keyed by id."""
    return {
        link.id: link if getattr(link, field) == index else link.model_copy(update={field: index})
        for index, link in enumerate(links)
    }


def compact_pinned(links: Sequence[LinkItem]) -> list[LinkItem]:
    """Renumber pinned links to a dense ``0..k-1`` and clear stray values.

    List positions are preserved; only ``pinned_order`` changes.
    """
    updated = renumber(pinned_links(links), field="pinned_order")
    result: list[LinkItem] = []
    for link in links:
        if link.pinned:
            result.append(updated[link.id])
        elif link.pinned_order is not None:
            result.append(link.model_copy(update={"pinned_order": None}))
        else:
            result.append(link)
    return result
