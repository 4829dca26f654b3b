"""CLI entry point for the bookmark navigator.

Every subcommand opens the store from the data directory, performs one
operation through the store's API and exits. Store errors are reported on
stderr with exit status 1.
"""

from __future__ import annotations

# Standard library imports (alphabetical within groups)
import argparse
import logging
import os
import sys
import time
import uuid
from pathlib import Path
from typing import TYPE_CHECKING

# Third-party imports
from dotenv import load_dotenv

# Internal imports
from bookmark_nav.assistant import LinkAssistant, fill_missing_descriptions
from bookmark_nav.backup import WebDavClient, export_bundle, read_bundle, restore_bundle, write_bundle
from bookmark_nav.config import (
    AI_CONFIG_KEY,
    ALL_CATEGORY_ID,
    DATA_DIR_ENV,
    DEFAULT_DATA_DIR,
    DEFAULT_TIMEOUT,
    SEARCH_CONFIG_KEY,
    SITE_SETTINGS_KEY,
    WEBDAV_CONFIG_KEY,
)
from bookmark_nav.errors import AssistantError, BackupError, StoreError
from bookmark_nav.html_writer import write_bookmark_html
from bookmark_nav.metadata import enrich_candidates, fetch_page_metadata
from bookmark_nav.ordering import displayed_links, pinned_links, sorted_categories
from bookmark_nav.parser import build_import, parse_bookmark_html
from bookmark_nav.persistence import JsonFileStorage
from bookmark_nav.preferences import (
    build_search_url,
    load_ai_config,
    load_search_config,
    load_site_settings,
    load_webdav_config,
    resolve_search_source,
    save_preference,
)
from bookmark_nav.store import BookmarkStore

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Callable

    from bookmark_nav.models import LinkItem

LOGGER = logging.getLogger("bookmark_nav")


def configure_logging(*, verbose: bool) -> None:
    """Configure root logging (debug when verbose)."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def _resolve_data_dir(path_arg: str | None) -> Path:
    return Path(path_arg or os.getenv(DATA_DIR_ENV) or DEFAULT_DATA_DIR).expanduser()


def _format_link(link: LinkItem) -> str:
    pin = "*" if link.pinned else " "
    return f"{pin} {link.id}  [{link.category_id}]  {link.title}  <{link.url}>"


# Subcommand handlers --------------------------------------------------------------


def _cmd_list(args: argparse.Namespace, store: BookmarkStore) -> None:
    if args.pinned:
        links = pinned_links(store.links)
    else:
        links = displayed_links(store.snapshot, args.category, args.query)
    for link in links:
        print(_format_link(link))


def _cmd_categories(_args: argparse.Namespace, store: BookmarkStore) -> None:
    for category in sorted_categories(store.categories):
        count = sum(1 for link in store.links if link.category_id == category.id)
        print(f"{category.id}  {category.name}  ({count})")


def _cmd_add(args: argparse.Namespace, store: BookmarkStore) -> None:
    title = args.title
    description = args.description
    icon = None
    if args.fetch:
        page = fetch_page_metadata(args.url)
        title = title or page.title
        description = description or page.description or None
        icon = page.icon or None
    link = store.add_link(
        {
            "title": title or "",
            "url": args.url,
            "description": description,
            "icon": icon,
            "categoryId": args.category,
            "pinned": args.pin,
        },
    )
    print(link.id)


def _cmd_update(args: argparse.Namespace, store: BookmarkStore) -> None:
    changes = {
        key: value
        for key, value in (
            ("title", args.title),
            ("url", args.url),
            ("description", args.description),
            ("category_id", args.category),
        )
        if value is not None
    }
    store.update_link(args.id, **changes)


def _cmd_delete(args: argparse.Namespace, store: BookmarkStore) -> None:
    if len(args.ids) == 1:
        store.delete_link(args.ids[0])
    else:
        store.batch_delete(args.ids)


def _cmd_move(args: argparse.Namespace, store: BookmarkStore) -> None:
    store.batch_move(args.ids, args.category)


def _cmd_pin(args: argparse.Namespace, store: BookmarkStore) -> None:
    link = store.toggle_pin(args.id)
    print("pinned" if link.pinned else "unpinned")


def _cmd_reorder(args: argparse.Namespace, store: BookmarkStore) -> None:
    if not store.reorder_links(args.moved, args.target, args.category, args.query):
        LOGGER.info("Nothing to reorder")


def _cmd_reorder_pinned(args: argparse.Namespace, store: BookmarkStore) -> None:
    if not store.reorder_pinned_links(args.moved, args.target):
        LOGGER.info("Nothing to reorder")


def _cmd_add_category(args: argparse.Namespace, store: BookmarkStore) -> None:
    print(store.add_category(args.name, icon=args.icon).id)


def _cmd_delete_category(args: argparse.Namespace, store: BookmarkStore) -> None:
    moved = store.delete_category(args.id)
    LOGGER.info("Moved %d links to the fallback category", moved)


def _cmd_import_html(args: argparse.Namespace, store: BookmarkStore) -> None:
    candidates = parse_bookmark_html(Path(args.file))
    if args.fetch:
        candidates = enrich_candidates(candidates)
    links, categories = build_import(
        candidates,
        store.categories,
        id_factory=lambda: uuid.uuid4().hex,
        now_ms=int(time.time() * 1000),
        target_category_id=args.category,
    )
    added = store.import_data(links, categories)
    print(f"Imported {added} new bookmarks")


def _cmd_export_html(args: argparse.Namespace, store: BookmarkStore) -> None:
    count = write_bookmark_html(store.snapshot, Path(args.file), include_pinned=args.include_pinned)
    LOGGER.info("Exported %d bookmarks to %s", count, args.file)


def _cmd_backup(args: argparse.Namespace, store: BookmarkStore) -> None:
    storage = JsonFileStorage(args.data_dir)
    bundle = export_bundle(
        store,
        webdav_config=load_webdav_config(storage) if args.with_settings else None,
        ai_config=load_ai_config(storage) if args.with_settings else None,
        search_config=load_search_config(storage) if args.with_settings else None,
    )
    write_bundle(bundle, Path(args.file))


def _cmd_restore(args: argparse.Namespace, store: BookmarkStore) -> None:
    count = restore_bundle(store, read_bundle(Path(args.file)), mode=args.mode)
    print(count)


def _cmd_webdav_push(args: argparse.Namespace, store: BookmarkStore) -> None:
    client = WebDavClient(load_webdav_config(JsonFileStorage(args.data_dir)), timeout=args.timeout)
    client.push(export_bundle(store))


def _cmd_webdav_pull(args: argparse.Namespace, store: BookmarkStore) -> None:
    client = WebDavClient(load_webdav_config(JsonFileStorage(args.data_dir)), timeout=args.timeout)
    print(restore_bundle(store, client.pull(), mode=args.mode))


def _cmd_describe(args: argparse.Namespace, store: BookmarkStore) -> None:
    assistant = LinkAssistant(load_ai_config(JsonFileStorage(args.data_dir)))
    print(f"Described {fill_missing_descriptions(store, assistant)} links")


def _cmd_search(args: argparse.Namespace, store: BookmarkStore) -> None:
    config = load_search_config(JsonFileStorage(args.data_dir))
    if args.source is None and config.mode == "internal":
        for link in displayed_links(store.snapshot, ALL_CATEGORY_ID, args.query):
            print(_format_link(link))
        return
    if args.source is None:
        source = resolve_search_source(config)
    else:
        source = next((s for s in config.external_sources if s.id == args.source), None)
    if source is None:
        msg = f"No search source available: {args.source or 'none enabled'}"
        raise ValueError(msg)
    print(build_search_url(source, args.query))


# Settings handlers ----------------------------------------------------------------


def _changed(args: argparse.Namespace, *names: str) -> dict[str, object]:
    return {name: getattr(args, name) for name in names if getattr(args, name) is not None}


def _cmd_config_webdav(args: argparse.Namespace, _store: BookmarkStore) -> None:
    storage = JsonFileStorage(args.data_dir)
    config = load_webdav_config(storage)
    changes = _changed(args, "url", "username", "password", "enabled")
    if changes:
        config = config.model_copy(update=changes)
        save_preference(storage, WEBDAV_CONFIG_KEY, config)
        LOGGER.info("Saved WebDAV settings")
    print(f"url={config.url} username={config.username} enabled={config.enabled}")
    if args.check and not WebDavClient(config, timeout=args.timeout).check_connection():
        msg = f"WebDAV share {config.url} is unreachable"
        raise BackupError(msg)


def _cmd_config_ai(args: argparse.Namespace, _store: BookmarkStore) -> None:
    storage = JsonFileStorage(args.data_dir)
    config = load_ai_config(storage)
    changes = _changed(args, "provider", "api_key", "base_url", "model")
    if changes:
        config = config.model_copy(update=changes)
        save_preference(storage, AI_CONFIG_KEY, config)
        LOGGER.info("Saved AI settings")
    key_state = "set" if config.api_key else "missing"
    print(f"provider={config.provider} model={config.model} base_url={config.base_url} api_key={key_state}")


def _cmd_config_search(args: argparse.Namespace, _store: BookmarkStore) -> None:
    storage = JsonFileStorage(args.data_dir)
    config = load_search_config(storage)
    changes = _changed(args, "mode")
    if args.source is not None:
        source = next((s for s in config.external_sources if s.id == args.source), None)
        if source is None:
            msg = f"Unknown search source: {args.source}"
            raise ValueError(msg)
        changes["selected_source"] = source
    if changes:
        config = config.model_copy(update=changes)
        save_preference(storage, SEARCH_CONFIG_KEY, config)
        LOGGER.info("Saved search settings")
    selected = config.selected_source.id if config.selected_source else "-"
    print(f"mode={config.mode} source={selected}")
    for source in config.external_sources:
        print(f"  {source.id}  {source.name}  {'on' if source.enabled else 'off'}")


def _cmd_config_site(args: argparse.Namespace, _store: BookmarkStore) -> None:
    storage = JsonFileStorage(args.data_dir)
    settings = load_site_settings(storage)
    changes = _changed(args, "title", "nav_title", "favicon", "card_style")
    if changes:
        settings = settings.model_copy(update=changes)
        save_preference(storage, SITE_SETTINGS_KEY, settings)
        LOGGER.info("Saved site settings")
    print(f"title={settings.title} nav_title={settings.nav_title} card_style={settings.card_style}")


# Argument parsing -----------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subcommand per store operation."""
    parser = argparse.ArgumentParser(description="Manage an ordered bookmark collection")
    parser.add_argument(
        "--data-dir",
        help=f"Directory holding the data files (default: ${DATA_DIR_ENV} or {DEFAULT_DATA_DIR})",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("list", help="List links in display order")
    p.add_argument("--category", default=ALL_CATEGORY_ID)
    p.add_argument("--query", default="")
    p.add_argument("--pinned", action="store_true", help="List the pinned section instead")
    p.set_defaults(handler=_cmd_list)

    p = sub.add_parser("categories", help="List categories")
    p.set_defaults(handler=_cmd_categories)

    p = sub.add_parser("add", help="Add a link")
    p.add_argument("url")
    p.add_argument("--title")
    p.add_argument("--description")
    p.add_argument("--category", default="common")
    p.add_argument("--pin", action="store_true")
    p.add_argument("--fetch", action="store_true", help="Fill title/description/icon from the page")
    p.set_defaults(handler=_cmd_add)

    p = sub.add_parser("update", help="Edit a link")
    p.add_argument("id")
    p.add_argument("--title")
    p.add_argument("--url")
    p.add_argument("--description")
    p.add_argument("--category")
    p.set_defaults(handler=_cmd_update)

    p = sub.add_parser("delete", help="Delete one or more links")
    p.add_argument("ids", nargs="+")
    p.set_defaults(handler=_cmd_delete)

    p = sub.add_parser("move", help="Move links to another category")
    p.add_argument("category")
    p.add_argument("ids", nargs="+")
    p.set_defaults(handler=_cmd_move)

    p = sub.add_parser("pin", help="Toggle the pinned flag of a link")
    p.add_argument("id")
    p.set_defaults(handler=_cmd_pin)

    p = sub.add_parser("reorder", help="Move a link onto another link's position")
    p.add_argument("moved")
    p.add_argument("target")
    p.add_argument("--category", default=ALL_CATEGORY_ID)
    p.add_argument("--query", default="")
    p.set_defaults(handler=_cmd_reorder)

    p = sub.add_parser("reorder-pinned", help="Reorder the pinned section")
    p.add_argument("moved")
    p.add_argument("target")
    p.set_defaults(handler=_cmd_reorder_pinned)

    p = sub.add_parser("add-category", help="Create a category")
    p.add_argument("name")
    p.add_argument("--icon")
    p.set_defaults(handler=_cmd_add_category)

    p = sub.add_parser("delete-category", help="Delete a category, keeping its links")
    p.add_argument("id")
    p.set_defaults(handler=_cmd_delete_category)

    p = sub.add_parser("import-html", help="Import a browser bookmark export")
    p.add_argument("file")
    p.add_argument("--category", help="Put every bookmark into this category")
    p.add_argument("--fetch", action="store_true", help="Fetch missing metadata")
    p.set_defaults(handler=_cmd_import_html)

    p = sub.add_parser("export-html", help="Export as a browser bookmark file")
    p.add_argument("file")
    p.add_argument("--include-pinned", action="store_true")
    p.set_defaults(handler=_cmd_export_html)

    p = sub.add_parser("backup", help="Write a JSON backup bundle")
    p.add_argument("file")
    p.add_argument("--with-settings", action="store_true", help="Include WebDAV/AI/search settings")
    p.set_defaults(handler=_cmd_backup)

    p = sub.add_parser("restore", help="Restore a JSON backup bundle")
    p.add_argument("file")
    p.add_argument("--mode", choices=("replace", "merge"), default="replace")
    p.set_defaults(handler=_cmd_restore)

    for name, handler in (("webdav-push", _cmd_webdav_push), ("webdav-pull", _cmd_webdav_pull)):
        p = sub.add_parser(name, help=f"{name.split('-')[1].title()} the backup on the WebDAV share")
        p.add_argument("--timeout", type=float, default=30.0)
        if name == "webdav-pull":
            p.add_argument("--mode", choices=("replace", "merge"), default="replace")
        p.set_defaults(handler=handler)

    p = sub.add_parser("describe", help="Generate missing descriptions with the AI assistant")
    p.set_defaults(handler=_cmd_describe)

    p = sub.add_parser("search", help="Search links, or print the external search url")
    p.add_argument("query")
    p.add_argument("--source", help="External source id (default: configured source)")
    p.set_defaults(handler=_cmd_search)

    config_sub = sub.add_parser("config", help="Show or change settings").add_subparsers(
        dest="section",
        required=True,
    )

    p = config_sub.add_parser("webdav", help="WebDAV backup target")
    p.add_argument("--url")
    p.add_argument("--username")
    p.add_argument("--password")
    p.add_argument("--enabled", action=argparse.BooleanOptionalAction, default=None)
    p.add_argument("--check", action="store_true", help="Probe the share after saving")
    p.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT)
    p.set_defaults(handler=_cmd_config_webdav)

    p = config_sub.add_parser("ai", help="AI assistant")
    p.add_argument("--provider")
    p.add_argument("--api-key")
    p.add_argument("--base-url")
    p.add_argument("--model")
    p.set_defaults(handler=_cmd_config_ai)

    p = config_sub.add_parser("search", help="Search mode and source")
    p.add_argument("--mode", choices=("internal", "external"))
    p.add_argument("--source", help="Id of the external source to select")
    p.set_defaults(handler=_cmd_config_search)

    p = config_sub.add_parser("site", help="Page and navigation titles")
    p.add_argument("--title")
    p.add_argument("--nav-title")
    p.add_argument("--favicon")
    p.add_argument("--card-style", choices=("detailed", "simple"))
    p.set_defaults(handler=_cmd_config_site)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Entry point for the bookmark navigator CLI."""
    load_dotenv()
    args = build_parser().parse_args(argv)
    configure_logging(verbose=args.verbose)
    args.data_dir = _resolve_data_dir(args.data_dir)

    store = BookmarkStore.open(JsonFileStorage(args.data_dir))
    handler: Callable[[argparse.Namespace, BookmarkStore], None] = args.handler
    try:
        handler(args, store)
    except (StoreError, BackupError, AssistantError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    if store.persistence_error is not None:
        print(f"warning: changes were not saved: {store.persistence_error}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
