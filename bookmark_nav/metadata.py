"""Fetch display metadata (title, description, icon) from a link target."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from html import unescape
from typing import TYPE_CHECKING
from urllib.parse import urljoin, urlparse, urlunparse

import requests
from bs4 import BeautifulSoup

from .config import DEFAULT_TIMEOUT
from .models import PageMetadata

if TYPE_CHECKING:  # runtime import kept minimal
    from collections.abc import Iterable

    from .models import ImportCandidate

LOGGER = logging.getLogger(__name__)

HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/125.0.0.0 Safari/537.36"
    ),
}

# Descriptions longer than this are cut; cards only show a line or two.
DESCRIPTION_LIMIT = 200

_SMALL_BATCH_CUTOFF = 3
_ICON_RELS = frozenset({"icon", "apple-touch-icon"})


def fetch_page_metadata(
    url: str,
    session: requests.Session | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> PageMetadata:
    """Fetch *url* and extract its metadata; failures yield empty fields."""
    session = session or _new_session()
    metadata = PageMetadata(icon=default_icon_url(url))
    response = _request_with_fallback(session, url, timeout)
    if response is None:
        return metadata
    content_type = response.headers.get("Content-Type", "")
    if "text/html" not in content_type.lower():
        LOGGER.debug("Skipping non-HTML content for %s (content-type=%s)", url, content_type)
        return metadata

    soup = BeautifulSoup(response.text, "html.parser")

    title = _first_non_empty(
        soup.find("meta", property="og:title"),
        soup.find("meta", attrs={"name": "twitter:title"}),
        soup.title,
    )
    if title:
        metadata.title = unescape(title)

    description = _first_non_empty(
        soup.find("meta", property="og:description"),
        soup.find("meta", attrs={"name": "description"}),
        soup.find("meta", attrs={"name": "twitter:description"}),
    )
    if description:
        metadata.description = unescape(description)[:DESCRIPTION_LIMIT]

    icon_href = _icon_href(soup)
    if icon_href:
        metadata.icon = urljoin(url, icon_href)
    return metadata


def enrich_candidates(
    candidates: Iterable[ImportCandidate],
    timeout: float = DEFAULT_TIMEOUT,
    workers: int = 12,
) -> list[ImportCandidate]:
    """Fill in missing titles, descriptions and icons of import candidates in-place.

    Candidates whose title is just their url are refetched. Uses a thread pool
    for the IO-bound requests and falls back gracefully on errors.
    """
    target: list[ImportCandidate] = list(candidates)
    session = _new_session()

    def _needs_fetch(c: ImportCandidate) -> bool:
        return c.title == c.url or not c.description or not c.icon

    def _work(c: ImportCandidate) -> ImportCandidate:
        if not _needs_fetch(c):
            return c
        try:
            page = fetch_page_metadata(c.url, session, timeout)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Failed to fetch metadata for %s: %s", c.url, exc)
            return c
        if page.title and c.title == c.url:
            c.title = page.title
        c.description = c.description or page.description
        c.icon = c.icon or page.icon or None
        return c

    if len(target) <= _SMALL_BATCH_CUTOFF:
        return [_work(c) for c in target]

    enriched: list[ImportCandidate] = list(target)
    with ThreadPoolExecutor(max_workers=max(1, workers)) as executor:
        future_map = {executor.submit(_work, c): idx for idx, c in enumerate(target)}
        for future in as_completed(future_map):
            idx = future_map[future]
            try:
                enriched[idx] = future.result()
            except Exception as exc:  # noqa: BLE001
                LOGGER.warning("Worker failed for candidate index %d: %s", idx, exc)
    return enriched


def default_icon_url(url: str) -> str:
    """``/favicon.ico`` at the root of *url*'s host, or "" when it has none."""
    root = _root_url(url)
    return f"{root}favicon.ico" if root else ""


def _new_session() -> requests.Session:
    session = requests.Session()
    session.headers.update(HEADERS)
    return session


def _icon_href(soup: BeautifulSoup) -> str:
    for link_tag in soup.find_all("link", href=True):
        rel = link_tag.get("rel") or []
        rels = {value.lower() for value in (rel if isinstance(rel, list) else str(rel).split())}
        if rels & _ICON_RELS:
            href = link_tag.get("href")
            if isinstance(href, str) and href.strip():
                return href.strip()
    return ""


def _request_with_fallback(
    session: requests.Session,
    url: str,
    timeout: float,
) -> requests.Response | None:
    try:
        response = session.get(url, timeout=timeout, allow_redirects=True)
        response.raise_for_status()
    except requests.HTTPError as exc:
        status = exc.response.status_code if exc.response is not None else None
        if status in {401, 403, 407}:
            fallback_url = _root_url(url)
            if fallback_url and fallback_url != url:
                LOGGER.debug(
                    "Permission error (%s) for %s; retrying with root %s",
                    status,
                    url,
                    fallback_url,
                )
                try:
                    fallback_response = session.get(
                        fallback_url,
                        timeout=timeout,
                        allow_redirects=True,
                    )
                    fallback_response.raise_for_status()
                except requests.RequestException as fallback_exc:
                    LOGGER.debug(
                        "Fallback request to %s failed: %s",
                        fallback_url,
                        fallback_exc,
                    )
                else:
                    return fallback_response
        return None
    except requests.RequestException as exc:
        LOGGER.debug("Request to %s failed: %s", url, exc)
        return None
    else:
        return response


def _root_url(url: str) -> str | None:
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return None
    return urlunparse((parsed.scheme, parsed.netloc, "/", "", "", ""))


def _first_non_empty(*tags: object) -> str:
    for candidate in tags:
        if candidate is None:
            continue
        getter = getattr(candidate, "get", None)
        if callable(getter):
            content = getter("content")
            if isinstance(content, str):
                trimmed = content.strip()
                if trimmed:
                    return trimmed
        text_getter = getattr(candidate, "get_text", None)
        if callable(text_getter):
            text = text_getter(strip=True)
            if isinstance(text, str) and text:
                return text
    return ""
