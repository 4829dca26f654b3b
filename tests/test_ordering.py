"""Tests for the pure ordering helpers and read views."""

from __future__ import annotations

from bookmark_nav.models import Category, Snapshot
from bookmark_nav.ordering import (
    compact_pinned,
    displayed_links,
    effective_order,
    filter_links,
    pinned_links,
    reorder,
    sorted_categories,
)

from conftest import BASE_TIME, make_link


def test_effective_order_falls_back_to_created_at() -> None:
    if effective_order(make_link("a", order=3)) != 3:
        raise AssertionError("Explicit order must win")
    if effective_order(make_link("b")) != BASE_TIME:
        raise AssertionError("Missing order must fall back to created_at")


def test_display_order_ties_break_on_id() -> None:
    links = [make_link("b", order=1), make_link("a", order=1), make_link("c", order=0)]
    view = displayed_links(Snapshot(links=tuple(links)))
    if [link.id for link in view] != ["c", "a", "b"]:
        raise AssertionError(f"Unexpected tie-break: {[link.id for link in view]}")


def test_pinned_view_puts_explicit_orders_first() -> None:
    links = [
        make_link("late", pinned=True, created_at=1),
        make_link("second", pinned=True, pinned_order=1),
        make_link("first", pinned=True, pinned_order=0),
        make_link("unpinned", pinned_order=None),
    ]
    if [link.id for link in pinned_links(links)] != ["first", "second", "late"]:
        raise AssertionError("Pinned view ordering is wrong")


def test_filter_links_by_category_and_query() -> None:
    links = [
        make_link("1", title="Python docs"),
        make_link("2", category_id="fun", description="Python games"),
        make_link("3", title="Rust book"),
    ]
    if [link.id for link in filter_links(links, "all", "PYTHON")] != ["1", "2"]:
        raise AssertionError("Search must be case-insensitive over title and description")
    if [link.id for link in filter_links(links, "work", "python")] != ["1"]:
        raise AssertionError("Category filter not applied")
    if [link.id for link in filter_links(links, "work", "3.example")] != ["3"]:
        raise AssertionError("Search must cover the url")


def test_reorder_is_pure() -> None:
    links = [make_link(str(i)) for i in (1, 2, 3)]
    moved = reorder(links, "3", "1")
    if [link.id for link in moved] != ["3", "1", "2"]:
        raise AssertionError("Moved item should take the target's index")
    if [link.id for link in links] != ["1", "2", "3"]:
        raise AssertionError("Input sequence must not be mutated")
    if [link.id for link in reorder(links, "1", "9")] != ["1", "2", "3"]:
        raise AssertionError("Unknown target must leave the order unchanged")


def test_compact_pinned_keeps_positions() -> None:
    links = [
        make_link("a", pinned=True, pinned_order=5),
        make_link("b", pinned_order=9),
        make_link("c", pinned=True, pinned_order=2),
    ]
    compacted = compact_pinned(links)
    if [link.id for link in compacted] != ["a", "b", "c"]:
        raise AssertionError("List positions must be preserved")
    if [link.pinned_order for link in compacted] != [1, None, 0]:
        raise AssertionError(f"Unexpected pinned orders: {[link.pinned_order for link in compacted]}")


def test_sorted_categories_uses_weight_then_position() -> None:
    categories = [
        Category(id="x", name="X"),
        Category(id="y", name="Y", order=0),
        Category(id="z", name="Z"),
    ]
    if [c.id for c in sorted_categories(categories)] != ["x", "y", "z"]:
        raise AssertionError("Weight 0 should tie with position 0 and keep stored order")
    categories[2] = Category(id="z", name="Z", order=-1)
    if [c.id for c in sorted_categories(categories)][0] != "z":
        raise AssertionError("Lower weight must sort first")
