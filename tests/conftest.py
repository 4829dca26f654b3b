"""Shared pytest fixtures for bookmark store tests."""

from __future__ import annotations

import itertools
from typing import TYPE_CHECKING

import pytest

from bookmark_nav.models import Category, LinkItem, Snapshot, default_categories
from bookmark_nav.persistence import MemoryStorage
from bookmark_nav.store import BookmarkStore

if TYPE_CHECKING:
    from pathlib import Path

BASE_TIME = 1_700_000_000_000


def make_link(link_id: str, category_id: str = "work", **fields: object) -> LinkItem:
    """Build a stored link with predictable defaults."""
    values: dict[str, object] = {
        "id": link_id,
        "title": f"Link {link_id}",
        "url": f"https://{link_id}.example",
        "category_id": category_id,
        "created_at": BASE_TIME,
    }
    values.update(fields)
    return LinkItem.model_validate(values)


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def store(storage: MemoryStorage) -> BookmarkStore:
    """Empty store with a ticking clock and sequential ids (n1, n2, ...)."""
    ticks = itertools.count(BASE_TIME, 1000)
    ids = (f"n{i}" for i in itertools.count(1))
    categories = (*default_categories(), Category(id="work", name="Work"), Category(id="fun", name="Fun"))
    return BookmarkStore(
        storage,
        Snapshot(categories=categories),
        clock=lambda: next(ticks),
        id_factory=lambda: next(ids),
    )


@pytest.fixture
def work_store(store: BookmarkStore) -> BookmarkStore:
    """Store holding links 1, 2, 3 in "work" with orders 0, 1, 2."""
    store.update_data(
        [make_link(str(i), order=i - 1) for i in (1, 2, 3)],
        store.categories,
    )
    return store


@pytest.fixture
def sample_export_html(tmp_path: Path) -> Path:
    """Create a minimal synthetic bookmark export HTML file."""
    content = (
        "<!DOCTYPE NETSCAPE-Bookmark-file-1><HTML><H1>Bookmarks</H1><DL><p>"
        "<DT><H3>Dev</H3><DL><p>"
        '<DT><A HREF="https://docs.python.org" ICON="data:image/png;base64,AA">Python Docs</A></DT>'
        "<DD>The reference</DD>"
        "<DT><H3>Nested</H3><DL><p>"
        '<DT><A HREF="https://pypi.org">PyPI</A></DT>'
        "</DL><p></DT>"
        "</DL><p></DT>"
        '<DT><A HREF="https://example.com">Example</A></DT>'
        '<DT><A HREF="javascript:void(0)">Bookmarklet</A></DT>'
        "</DL></HTML>"
    )
    p = tmp_path / "sample.html"
    p.write_text(content, encoding="utf-8")
    return p
