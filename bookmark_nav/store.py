"""The ordered bookmark store.

``BookmarkStore`` owns the canonical ``(links, categories)`` snapshot. Every
mutation builds the complete next state, validates it, swaps it in, persists it
through the storage port and then publishes it to subscribers. A mutation that
raises leaves the previous snapshot in place.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import TYPE_CHECKING
from urllib.parse import urlsplit, urlunsplit

from pydantic import ValidationError as PydanticValidationError

from .config import ALL_CATEGORY_ID, FALLBACK_CATEGORY_ID, RESERVED_CATEGORY_IDS, STORAGE_KEY
from .errors import InvalidOperationError, NotFoundError, StoreError, ValidationError
from .models import Category, LinkDraft, LinkItem, Snapshot, default_categories
from .ordering import (
    compact_pinned,
    displayed_links,
    effective_order,
    pinned_links,
    renumber,
    reorder,
)
from .validator import validate_snapshot

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Callable, Iterable, Mapping, Sequence

    from .persistence import StoragePort

    Listener = Callable[[Snapshot], None]

LOGGER = logging.getLogger(__name__)

_IMMUTABLE_LINK_FIELDS = frozenset({"id", "created_at"})
_LINK_ALIASES = {"categoryId": "category_id", "createdAt": "created_at", "pinnedOrder": "pinned_order"}


def _now_ms() -> int:
    return int(time.time() * 1000)


def _new_id() -> str:
    return uuid.uuid4().hex


def normalise_url(url: str) -> str:
    """Key used to detect duplicate links: case-folded host, no trailing slash."""
    parts = urlsplit(url.strip())
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, parts.query, ""))


def load_snapshot(storage: StoragePort) -> Snapshot:
    """Read the persisted snapshot; absent or corrupt data yields the default one."""
    raw = storage.read(STORAGE_KEY)
    if raw is None:
        LOGGER.info("No persisted snapshot under %s; starting empty", STORAGE_KEY)
        return Snapshot(categories=default_categories())
    try:
        snapshot = Snapshot.from_json(raw)
        snapshot = _repair(snapshot)
        validate_snapshot(snapshot.links, snapshot.categories)
    except (PydanticValidationError, ValueError, StoreError) as exc:
        LOGGER.warning("Persisted snapshot is unreadable (%s); starting empty", exc)
        return Snapshot(categories=default_categories())
    LOGGER.info(
        "Loaded %d links and %d categories", len(snapshot.links), len(snapshot.categories),
    )
    return snapshot


def _repair(snapshot: Snapshot) -> Snapshot:
    """Fix what a stale cache can carry: virtual or duplicate categories, blank or
    dangling links, pin gaps."""
    categories: list[Category] = []
    for category in snapshot.categories:
        if category.id == ALL_CATEGORY_ID:
            continue
        if any(kept.id == category.id for kept in categories):
            LOGGER.warning("Dropping duplicate category id %s from persisted snapshot", category.id)
            continue
        categories.append(category)
    categories = _with_fallback(categories)
    known = {category.id for category in categories}
    seen: set[str] = set()
    links: list[LinkItem] = []
    for link in snapshot.links:
        if link.id in seen:
            LOGGER.warning("Dropping duplicate link id %s from persisted snapshot", link.id)
            continue
        seen.add(link.id)
        if not link.title or not link.url:
            LOGGER.warning("Dropping link %s with empty title or url from persisted snapshot", link.id)
            continue
        if link.category_id not in known:
            link = link.model_copy(update={"category_id": FALLBACK_CATEGORY_ID})
        links.append(link)
    return Snapshot(links=tuple(compact_pinned(links)), categories=tuple(categories))


def _with_fallback(categories: Sequence[Category]) -> list[Category]:
    if any(category.id == FALLBACK_CATEGORY_ID for category in categories):
        return list(categories)
    return [*default_categories(), *categories]


def _coerce_links(items: Iterable[LinkItem | Mapping[str, object]]) -> list[LinkItem]:
    try:
        return [item if isinstance(item, LinkItem) else LinkItem.model_validate(item) for item in items]
    except PydanticValidationError as exc:
        msg = f"Malformed link data: {exc}"
        raise ValidationError(msg) from exc


def _coerce_categories(items: Iterable[Category | Mapping[str, object]]) -> list[Category]:
    try:
        return [item if isinstance(item, Category) else Category.model_validate(item) for item in items]
    except PydanticValidationError as exc:
        msg = f"Malformed category data: {exc}"
        raise ValidationError(msg) from exc


class BookmarkStore:
    """Single owner of the bookmark snapshot.

    Callers read ``store.snapshot`` (frozen) or subscribe to receive every new
    snapshot, and route all changes through the mutation methods.
    """

    def __init__(
        self,
        storage: StoragePort,
        snapshot: Snapshot | None = None,
        *,
        clock: Callable[[], int] = _now_ms,
        id_factory: Callable[[], str] = _new_id,
    ) -> None:
        """Initialise the store.

        Args:
            storage: Port the snapshot is written to after every mutation.
            snapshot: Starting state; defaults to an empty store.
            clock: Returns the current time in epoch milliseconds.
            id_factory: Returns candidate ids for new links and categories.

        Raises:
            StoreError: When *snapshot* breaks the store invariants.

        """
        if snapshot is not None:
            validate_snapshot(snapshot.links, snapshot.categories)
        self._storage = storage
        self._snapshot = snapshot or Snapshot(categories=default_categories())
        self._clock = clock
        self._id_factory = id_factory
        self._listeners: list[Listener] = []
        self.persistence_error: Exception | None = None

    @classmethod
    def open(cls, storage: StoragePort, **kwargs: object) -> BookmarkStore:
        """Create a store initialised from the snapshot persisted in *storage*."""
        return cls(storage, load_snapshot(storage), **kwargs)  # type: ignore[arg-type]

    # Read model ------------------------------------------------------------------

    @property
    def snapshot(self) -> Snapshot:
        """The current frozen snapshot."""
        return self._snapshot

    @property
    def links(self) -> tuple[LinkItem, ...]:
        return self._snapshot.links

    @property
    def categories(self) -> tuple[Category, ...]:
        return self._snapshot.categories

    def get_link(self, link_id: str) -> LinkItem:
        """Return the link with *link_id* or raise NotFoundError."""
        link = self._snapshot.find_link(link_id)
        if link is None:
            msg = f"Link not found: {link_id}"
            raise NotFoundError(msg)
        return link

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener* for every published snapshot; returns an unsubscribe."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # Link operations -------------------------------------------------------------

    def add_link(self, data: LinkDraft | Mapping[str, object]) -> LinkItem:
        """Create a link that sorts after every existing one."""
        draft = self._coerce_draft(data)
        if not draft.title or not draft.url:
            msg = "Link title and url are required"
            raise ValidationError(msg)
        self._require_category(draft.category_id)

        links = list(self._snapshot.links)
        next_order = max((effective_order(link) for link in links), default=-1) + 1
        link = LinkItem(
            id=self._fresh_id({link.id for link in links}),
            title=draft.title,
            url=draft.url,
            description=draft.description,
            icon=draft.icon,
            category_id=draft.category_id,
            created_at=self._clock(),
            order=next_order,
            pinned=draft.pinned,
            pinned_order=len(pinned_links(links)) if draft.pinned else None,
        )
        self._commit([*links, link], self._snapshot.categories)
        LOGGER.info("Added link %s (%s) to %s", link.id, link.url, link.category_id)
        return link

    def update_link(self, link_id: str, **changes: object) -> LinkItem:
        """Replace mutable fields of a link.

        ``order`` and ``pinned_order`` only change when supplied; flipping
        ``pinned`` without a ``pinned_order`` appends or compacts like toggle_pin.
        """
        current = self.get_link(link_id)
        fields = {_LINK_ALIASES.get(key, key): value for key, value in changes.items()}
        unknown = set(fields) - set(LinkItem.model_fields)
        if unknown:
            msg = f"Unknown link fields: {', '.join(sorted(unknown))}"
            raise ValidationError(msg)
        frozen = {key for key in _IMMUTABLE_LINK_FIELDS & set(fields) if fields[key] != getattr(current, key)}
        if frozen:
            msg = f"Link fields are immutable: {', '.join(sorted(frozen))}"
            raise ValidationError(msg)

        try:
            updated = LinkItem.model_validate({**current.model_dump(), **fields})
        except PydanticValidationError as exc:
            msg = f"Malformed link data: {exc}"
            raise ValidationError(msg) from exc
        if not updated.title or not updated.url:
            msg = "Link title and url are required"
            raise ValidationError(msg)
        self._require_category(updated.category_id)

        links = [updated if link.id == link_id else link for link in self._snapshot.links]
        if updated.pinned != current.pinned and "pinned_order" not in fields:
            links = self._set_pinned(links, link_id, pinned=updated.pinned)
        self._commit(links, self._snapshot.categories)
        LOGGER.info("Updated link %s", link_id)
        return self.get_link(link_id)

    def delete_link(self, link_id: str) -> None:
        """Remove a link; raises NotFoundError when it does not exist."""
        removed = self.get_link(link_id)
        links = [link for link in self._snapshot.links if link.id != link_id]
        if removed.pinned:
            links = compact_pinned(links)
        self._commit(links, self._snapshot.categories)
        LOGGER.info("Deleted link %s", link_id)

    def batch_delete(self, link_ids: Iterable[str]) -> int:
        """Remove several links in one mutation; returns how many were removed."""
        targets = self._require_links(link_ids)
        links = compact_pinned([link for link in self._snapshot.links if link.id not in targets])
        self._commit(links, self._snapshot.categories)
        LOGGER.info("Deleted %d links", len(targets))
        return len(targets)

    def batch_move(self, link_ids: Iterable[str], category_id: str) -> int:
        """Move several links to *category_id* in one mutation."""
        targets = self._require_links(link_ids)
        self._require_category(category_id)
        links = [
            link.model_copy(update={"category_id": category_id}) if link.id in targets else link
            for link in self._snapshot.links
        ]
        self._commit(links, self._snapshot.categories)
        LOGGER.info("Moved %d links to %s", len(targets), category_id)
        return len(targets)

    def toggle_pin(self, link_id: str) -> LinkItem:
        """Flip ``pinned``; pinning appends, unpinning re-compacts the rest."""
        link = self.get_link(link_id)
        links = self._set_pinned(list(self._snapshot.links), link_id, pinned=not link.pinned)
        self._commit(links, self._snapshot.categories)
        LOGGER.info("%s link %s", "Pinned" if not link.pinned else "Unpinned", link_id)
        return self.get_link(link_id)

    def reorder_links(
        self,
        moved_id: str,
        target_id: str,
        scope_category_id: str = ALL_CATEGORY_ID,
        query: str = "",
    ) -> bool:
        """Move *moved_id* to *target_id*'s position within the visible scope.

        The scope is the displayed list for the category (every link for
        ``"all"``) and search query; it is renumbered ``order = 0..n-1``.
        Returns False, changing nothing, when the move is not applicable.
        """
        scope = displayed_links(self._snapshot, scope_category_id, query)
        moved = reorder(scope, moved_id, target_id)
        if [link.id for link in moved] == [link.id for link in scope]:
            LOGGER.debug("Ignoring reorder of %s onto %s in %s", moved_id, target_id, scope_category_id)
            return False
        updated = renumber(moved, field="order")
        links = [updated.get(link.id, link) for link in self._snapshot.links]
        self._commit(links, self._snapshot.categories)
        LOGGER.info("Reordered %d links in %s", len(moved), scope_category_id)
        return True

    def reorder_pinned_links(self, moved_id: str, target_id: str) -> bool:
        """Same as reorder_links over the pinned view, renumbering ``pinned_order``."""
        scope = pinned_links(self._snapshot.links)
        moved = reorder(scope, moved_id, target_id)
        if [link.id for link in moved] == [link.id for link in scope]:
            LOGGER.debug("Ignoring pinned reorder of %s onto %s", moved_id, target_id)
            return False
        updated = renumber(moved, field="pinned_order")
        links = [updated.get(link.id, link) for link in self._snapshot.links]
        self._commit(links, self._snapshot.categories)
        LOGGER.info("Reordered %d pinned links", len(moved))
        return True

    # Category operations ---------------------------------------------------------

    def add_category(self, name: str, icon: str | None = None, category_id: str | None = None) -> Category:
        """Append a new category."""
        name = name.strip()
        if not name:
            msg = "Category name is required"
            raise ValidationError(msg)
        existing = self._snapshot.category_ids()
        if category_id is None:
            category_id = self._fresh_id(existing)
        elif category_id in existing or category_id in RESERVED_CATEGORY_IDS:
            msg = f"Category id already in use: {category_id}"
            raise ValidationError(msg)
        category = Category(id=category_id, name=name, **({"icon": icon} if icon else {}))
        self._commit(self._snapshot.links, [*self._snapshot.categories, category])
        LOGGER.info("Added category %s (%s)", category.id, category.name)
        return category

    def update_category(self, category_id: str, **changes: object) -> Category:
        """Replace display fields of a category; the id is immutable."""
        current = next((c for c in self._snapshot.categories if c.id == category_id), None)
        if current is None:
            msg = f"Category not found: {category_id}"
            raise NotFoundError(msg)
        if changes.get("id", category_id) != category_id:
            msg = "Category id is immutable"
            raise ValidationError(msg)
        try:
            updated = Category.model_validate({**current.model_dump(), **changes})
        except PydanticValidationError as exc:
            msg = f"Malformed category data: {exc}"
            raise ValidationError(msg) from exc
        if not updated.name.strip():
            msg = "Category name is required"
            raise ValidationError(msg)
        categories = [updated if c.id == category_id else c for c in self._snapshot.categories]
        self._commit(self._snapshot.links, categories)
        return updated

    def delete_category(self, category_id: str) -> int:
        """Remove a category, moving its links to the fallback category.

        Returns the number of links that were moved.
        """
        if category_id in RESERVED_CATEGORY_IDS:
            msg = f"Reserved category cannot be deleted: {category_id}"
            raise InvalidOperationError(msg)
        if category_id not in self._snapshot.category_ids():
            msg = f"Category not found: {category_id}"
            raise NotFoundError(msg)
        moved = 0
        links: list[LinkItem] = []
        for link in self._snapshot.links:
            if link.category_id == category_id:
                link = link.model_copy(update={"category_id": FALLBACK_CATEGORY_ID})
                moved += 1
            links.append(link)
        categories = [c for c in self._snapshot.categories if c.id != category_id]
        self._commit(links, categories)
        LOGGER.info("Deleted category %s; moved %d links to %s", category_id, moved, FALLBACK_CATEGORY_ID)
        return moved

    # Snapshot operations ---------------------------------------------------------

    def import_data(
        self,
        new_links: Iterable[LinkItem | Mapping[str, object]],
        new_categories: Iterable[Category | Mapping[str, object]] = (),
    ) -> int:
        """Merge an external snapshot; returns the number of links added.

        Categories are merged by id. Links whose id or normalised url already
        exists are skipped, and existing links are left untouched. Added links are
        appended after every existing one, keeping their incoming relative order.
        """
        incoming_links = _coerce_links(new_links)
        categories = list(self._snapshot.categories)
        for category in _coerce_categories(new_categories):
            if category.id == ALL_CATEGORY_ID:
                LOGGER.debug("Skipping virtual category in import")
                continue
            index = next((i for i, c in enumerate(categories) if c.id == category.id), None)
            if index is None:
                categories.append(category)
            else:
                categories[index] = category

        existing = list(self._snapshot.links)
        known_ids = {link.id for link in existing}
        known_urls = {normalise_url(link.url) for link in existing}
        known_categories = {c.id for c in categories} | {FALLBACK_CATEGORY_ID}
        pinned_count = len(pinned_links(existing))
        next_order = max((effective_order(link) for link in existing), default=-1) + 1
        added: list[LinkItem] = []
        for link in incoming_links:
            url_key = normalise_url(link.url)
            if link.id in known_ids or url_key in known_urls:
                LOGGER.debug("Skipping duplicate link %s (%s)", link.id, link.url)
                continue
            if not link.title or not link.url:
                LOGGER.warning("Skipping imported link %s with empty title or url", link.id)
                continue
            update: dict[str, object] = {"order": next_order + len(added), "pinned_order": None}
            if link.category_id not in known_categories:
                update["category_id"] = FALLBACK_CATEGORY_ID
            if link.pinned:
                update["pinned_order"] = pinned_count
                pinned_count += 1
            added.append(link.model_copy(update=update))
            known_ids.add(link.id)
            known_urls.add(url_key)

        self._commit([*existing, *added], categories)
        LOGGER.info("Imported %d new links (%d skipped)", len(added), len(incoming_links) - len(added))
        return len(added)

    def update_data(
        self,
        links: Iterable[LinkItem | Mapping[str, object]],
        categories: Iterable[Category | Mapping[str, object]],
    ) -> Snapshot:
        """Replace the whole snapshot with a caller computed one.

        Ids and category references are validated; the pinned sequence is
        compacted and the fallback category restored when missing.
        """
        new_links = compact_pinned(_coerce_links(links))
        new_categories = _with_fallback(_coerce_categories(categories))
        snapshot = self._commit(new_links, new_categories)
        LOGGER.info("Replaced snapshot: %d links, %d categories", len(new_links), len(new_categories))
        return snapshot

    def export_snapshot(self) -> Snapshot:
        """Return the current snapshot for backup/export."""
        return self._snapshot

    # Internals -------------------------------------------------------------------

    def _commit(self, links: Sequence[LinkItem], categories: Sequence[Category]) -> Snapshot:
        validate_snapshot(links, categories)
        snapshot = Snapshot(links=tuple(links), categories=tuple(categories))
        self._snapshot = snapshot
        self._persist(snapshot)
        self._publish(snapshot)
        return snapshot

    def _persist(self, snapshot: Snapshot) -> None:
        try:
            self._storage.write(STORAGE_KEY, snapshot.to_json())
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Failed to persist snapshot (%s); continuing in memory only", exc)
            self.persistence_error = exc
        else:
            self.persistence_error = None

    def _publish(self, snapshot: Snapshot) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                LOGGER.exception("Snapshot listener %r failed", listener)

    def _set_pinned(self, links: list[LinkItem], link_id: str, *, pinned: bool) -> list[LinkItem]:
        if pinned:
            others = [link for link in links if link.id != link_id]
            position = len(pinned_links(others))
            return [
                link.model_copy(update={"pinned": True, "pinned_order": position}) if link.id == link_id else link
                for link in links
            ]
        cleared = [
            link.model_copy(update={"pinned": False, "pinned_order": None}) if link.id == link_id else link
            for link in links
        ]
        return compact_pinned(cleared)

    def _require_category(self, category_id: str) -> None:
        if category_id == ALL_CATEGORY_ID:
            msg = f"'{ALL_CATEGORY_ID}' cannot be assigned to a link"
            raise ValidationError(msg)
        if category_id != FALLBACK_CATEGORY_ID and category_id not in self._snapshot.category_ids():
            msg = f"Unknown category: {category_id}"
            raise ValidationError(msg)

    def _require_links(self, link_ids: Iterable[str]) -> set[str]:
        targets = set(link_ids)
        missing = targets - {link.id for link in self._snapshot.links}
        if missing:
            msg = f"Links not found: {', '.join(sorted(missing))}"
            raise NotFoundError(msg)
        return targets

    def _fresh_id(self, taken: set[str]) -> str:
        candidate = self._id_factory()
        while candidate in taken or candidate in RESERVED_CATEGORY_IDS:
            candidate = self._id_factory()
        return candidate

    @staticmethod
    def _coerce_draft(data: LinkDraft | Mapping[str, object]) -> LinkDraft:
        if isinstance(data, LinkDraft):
            return data
        try:
            return LinkDraft.model_validate(data)
        except PydanticValidationError as exc:
            msg = f"Malformed link data: {exc}"
            raise ValidationError(msg) from exc
