"""Parse an exported browser bookmark file into import candidates."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from bs4 import BeautifulSoup, Tag

from .config import ALL_CATEGORY_ID, FALLBACK_CATEGORY_ID
from .models import Category, ImportCandidate, LinkItem

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Callable, Iterable, Sequence
    from pathlib import Path

LOGGER = logging.getLogger(__name__)

_IMPORTABLE_SCHEMES = ("http://", "https://", "ftp://")


def parse_bookmark_html(html_path: Path) -> list[ImportCandidate]:
    """Parse a Netscape-format bookmark export (Chrome, Firefox, Edge...)."""
    LOGGER.debug("Parsing bookmark export from %s", html_path)
    return parse_bookmark_text(html_path.read_text(encoding="utf-8"))


def parse_bookmark_text(html_text: str) -> list[ImportCandidate]:
    """Parse bookmark export markup already held in memory."""
    soup = BeautifulSoup(html_text, "html.parser")

    root_dl = soup.find("dl")
    if root_dl is None:
        msg = "Bookmark export is missing <DL> root element"
        raise ValueError(msg)

    candidates: list[ImportCandidate] = []
    for anchor in root_dl.find_all("a"):
        candidate = _candidate_from_anchor(anchor)
        if candidate is not None:
            candidates.append(candidate)

    LOGGER.info("Extracted %d bookmark entries", len(candidates))
    return candidates


def _candidate_from_anchor(anchor: Tag) -> ImportCandidate | None:
    href_value = anchor.get("href")
    if not isinstance(href_value, str):
        LOGGER.debug("Skipping anchor without textual href")
        return None

    href = href_value.strip()
    if not href.lower().startswith(_IMPORTABLE_SCHEMES):
        LOGGER.debug("Skipping non-web bookmark %r", href[:40])
        return None

    title = anchor.get_text(strip=True) or href
    icon = anchor.get("icon")
    description = _description_for(anchor)
    return ImportCandidate(
        title=title,
        url=href,
        folder="/".join(_compute_folder_segments(anchor)),
        description=description,
        icon=icon if isinstance(icon, str) and icon else None,
    )


def _description_for(anchor: Tag) -> str:
    # Netscape exports put a link's note in a <DD> right after its <DT>; with
    # unclosed <DT> tags the parser nests it next to the anchor instead.
    for node in (anchor, anchor.find_parent("dt")):
        if node is None:
            continue
        sibling = node.find_next_sibling()
        if isinstance(sibling, Tag) and sibling.name == "dd":
            return "".join(sibling.find_all(string=True, recursive=False)).strip()
    return ""


def _compute_folder_segments(anchor: Tag) -> list[str]:
    segments: list[str] = []
    current_dl = anchor.find_parent("dl")

    while current_dl is not None:
        dt_container = current_dl.find_parent("dt")
        if dt_container is None:
            break

        header = dt_container.find("h3")
        if header is not None:
            folder_name = header.get_text(strip=True)
            if folder_name:
                segments.append(folder_name)

        current_dl = dt_container.find_parent("dl")

    segments.reverse()
    return segments


def build_import(
    candidates: Iterable[ImportCandidate],
    categories: Sequence[Category],
    *,
    id_factory: Callable[[], str],
    now_ms: int,
    target_category_id: str | None = None,
) -> tuple[list[LinkItem], list[Category]]:
    """Map candidates onto links and the categories they need.

    With *target_category_id* every link goes there. Otherwise the top-level
    folder name selects an existing category (case-insensitive) or creates one;
    unfiled links land in the fallback category. The result feeds
    ``BookmarkStore.import_data``; ``created_at`` increases in file order.
    """
    if target_category_id == ALL_CATEGORY_ID:
        msg = f"'{ALL_CATEGORY_ID}' cannot be an import target"
        raise ValueError(msg)
    by_name = {category.name.strip().lower(): category for category in categories}
    new_categories: list[Category] = []
    links: list[LinkItem] = []

    for offset, candidate in enumerate(candidates):
        category_id = target_category_id or _category_for_folder(
            candidate.folder, by_name, new_categories, id_factory,
        )
        links.append(
            LinkItem(
                id=id_factory(),
                title=candidate.title,
                url=candidate.url,
                description=candidate.description or None,
                icon=candidate.icon,
                category_id=category_id,
                created_at=now_ms + offset,
            ),
        )
    return links, new_categories


def _category_for_folder(
    folder: str,
    by_name: dict[str, Category],
    new_categories: list[Category],
    id_factory: Callable[[], str],
) -> str:
    top_level = folder.split("/", 1)[0].strip()
    if not top_level:
        return FALLBACK_CATEGORY_ID
    existing = by_name.get(top_level.lower())
    if existing is not None:
        return existing.id
    category = Category(id=id_factory(), name=top_level)
    by_name[top_level.lower()] = category
    new_categories.append(category)
    LOGGER.debug("Creating category %s for folder %s", category.id, top_level)
    return category.id
