"""Snapshot invariant checks run before the store accepts a new state."""

from __future__ import annotations

import collections
import logging
from typing import TYPE_CHECKING

from .config import ALL_CATEGORY_ID, FALLBACK_CATEGORY_ID
from .errors import InvalidOperationError, ValidationError

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Sequence

    from .models import Category, LinkItem

LOGGER = logging.getLogger(__name__)


def validate_snapshot(links: Sequence[LinkItem], categories: Sequence[Category]) -> None:
    """Validate a candidate ``(links, categories)`` pair.

    Raises ValidationError for malformed content and InvalidOperationError when
    the pinned sequence is not dense.
    """
    _assert_unique_ids([link.id for link in links], "link")
    _assert_unique_ids([category.id for category in categories], "category")
    _assert_no_virtual_category(categories)
    _assert_required_fields(links)
    _assert_categories_resolve(links, categories)
    _assert_pinned_sequence(links)
    LOGGER.debug(
        "Validated snapshot with %d links and %d categories", len(links), len(categories),
    )


def _assert_unique_ids(ids: list[str], kind: str) -> None:
    counts = collections.Counter(ids)
    duplicates = sorted(item for item, count in counts.items() if count > 1)
    if duplicates:
        msg = f"Duplicate {kind} ids: {', '.join(duplicates)}"
        raise ValidationError(msg)


def _assert_no_virtual_category(categories: Sequence[Category]) -> None:
    if any(category.id == ALL_CATEGORY_ID for category in categories):
        msg = f"'{ALL_CATEGORY_ID}' is a virtual filter and cannot be stored as a category"
        raise ValidationError(msg)


def _assert_required_fields(links: Sequence[LinkItem]) -> None:
    blank = [link.id for link in links if not link.title or not link.url]
    if blank:
        msg = f"Links with empty title or url: {', '.join(blank)}"
        raise ValidationError(msg)


def _assert_categories_resolve(links: Sequence[LinkItem], categories: Sequence[Category]) -> None:
    known = {category.id for category in categories} | {FALLBACK_CATEGORY_ID}
    dangling = sorted({link.category_id for link in links if link.category_id not in known})
    if dangling:
        msg = f"Links reference unknown categories: {', '.join(dangling)}"
        raise ValidationError(msg)


def _assert_pinned_sequence(links: Sequence[LinkItem]) -> None:
    raw_orders = [link.pinned_order for link in links if link.pinned]
    if any(value is None for value in raw_orders):
        msg = "Pinned links without a pinned order"
        raise InvalidOperationError(msg)
    pinned_orders = sorted(value for value in raw_orders if value is not None)
    if pinned_orders != list(range(len(pinned_orders))):
        msg = f"Pinned order is not a dense sequence: {pinned_orders}"
        raise InvalidOperationError(msg)
    stray = [link.id for link in links if not link.pinned and link.pinned_order is not None]
    if stray:
        msg = f"Unpinned links carry a pinned order: {', '.join(stray)}"
        raise InvalidOperationError(msg)
