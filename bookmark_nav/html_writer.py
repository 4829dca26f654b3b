"""Functions for rendering a snapshot as a browser bookmark file."""

from __future__ import annotations

import html
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from pathlib import Path

    from .models import Snapshot

from .models import ExportFolder
from .ordering import pinned_links, sort_for_display, sorted_categories

PINNED_FOLDER_NAME = "Pinned"

HTML_HEADER = """<!DOCTYPE NETSCAPE-Bookmark-file-1>
<!-- This is an automatically generated file.
     It will be read and overwritten.
     DO NOT EDIT! -->
<META HTTP-EQUIV="Content-Type" CONTENT="text/html; charset=UTF-8">
<TITLE>Bookmarks</TITLE>
<H1>Bookmarks</H1>
"""


def build_folders(snapshot: Snapshot, *, include_pinned: bool = True) -> list[ExportFolder]:
    """Group links into one folder per category, in display order.

    Empty categories are omitted. Pinned links additionally appear in a
    leading "Pinned" folder when *include_pinned* is set.
    """
    folders: list[ExportFolder] = []
    if include_pinned:
        pinned = ExportFolder(name=PINNED_FOLDER_NAME)
        for link in pinned_links(snapshot.links):
            pinned.add_link(link)
        if pinned.links:
            folders.append(pinned)

    ordered_links = sort_for_display(snapshot.links)
    for category in sorted_categories(snapshot.categories):
        folder = ExportFolder(name=category.name)
        for link in ordered_links:
            if link.category_id == category.id:
                folder.add_link(link)
        if folder.links:
            folders.append(folder)
    return folders


def render_html(folders: list[ExportFolder]) -> str:
    """Render the folders as Netscape bookmark HTML."""
    lines: list[str] = [HTML_HEADER.strip(), "<DL><p>"]
    indent = "    "
    for folder in folders:
        lines.append(f"{indent}<DT><H3>{html.escape(folder.name)}</H3>")
        lines.append(f"{indent}<DL><p>")
        for link in folder.links:
            href = html.escape(link.url, quote=True)
            add_date = link.created_at // 1000
            icon = f' ICON="{html.escape(link.icon, quote=True)}"' if link.icon else ""
            lines.append(
                f'{indent * 2}<DT><A HREF="{href}" ADD_DATE="{add_date}"{icon}>{html.escape(link.title)}</A>',
            )
            if link.description:
                lines.append(f"{indent * 2}<DD>{html.escape(link.description)}")
        lines.append(f"{indent}</DL><p>")
    lines.append("</DL><p>")
    return "\n".join(lines)


def write_bookmark_html(snapshot: Snapshot, output_path: Path, *, include_pinned: bool = False) -> int:
    """Write the snapshot to an HTML file; returns the number of links written."""
    folders = build_folders(snapshot, include_pinned=include_pinned)
    output_path.write_text(render_html(folders) + "\n", encoding="utf-8")
    return sum(len(folder.links) for folder in folders)
