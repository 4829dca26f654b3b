"""Tests for page metadata extraction and import enrichment."""
from __future__ import annotations

import types

import requests

from bookmark_nav import metadata
from bookmark_nav.models import ImportCandidate


class DummyResponse:
    def __init__(self, text: str, status: int = 200, content_type: str = "text/html") -> None:
        self.text = text
        self.status_code = status
        self._headers = {"Content-Type": content_type}

    @property
    def headers(self):  # simple property shim
        return self._headers

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            msg = f"HTTP {self.status_code}"
            raise requests.HTTPError(msg, response=self)  # type: ignore[arg-type]


def _dummy_html(title: str, desc: str = "", icon: str = "") -> str:
    parts = ["<html><head>"]
    if title:
        parts.append(f"<title>{title}</title>")
    if desc:
        parts.append(f'<meta name="description" content="{desc}" />')
    if icon:
        parts.append(f'<link rel="shortcut icon" href="{icon}" />')
    parts.append("</head><body></body></html>")
    return "".join(parts)


def _session_for(pages: dict[str, DummyResponse]) -> types.SimpleNamespace:
    # unused args retained to match requests.Session.get signature
    def fake_get(url: str, timeout: float | None = None, allow_redirects: bool = True):  # noqa: ARG001
        return pages[url]

    return types.SimpleNamespace(get=fake_get, headers={})


def test_fetch_page_metadata_reads_title_description_and_icon() -> None:
    session = _session_for(
        {"https://alpha.example/docs": DummyResponse(_dummy_html("Alpha", "Alpha &amp; more", "/static/fav.png"))},
    )
    page = metadata.fetch_page_metadata("https://alpha.example/docs", session)  # type: ignore[arg-type]
    if page.title != "Alpha":
        raise AssertionError(f"Unexpected title {page.title!r}")
    if page.description != "Alpha & more":
        raise AssertionError(f"Unexpected description {page.description!r}")
    if page.icon != "https://alpha.example/static/fav.png":
        raise AssertionError(f"Icon should be resolved against the page url, got {page.icon!r}")


def test_fetch_page_metadata_falls_back_to_root_on_forbidden() -> None:
    session = _session_for(
        {
            "https://beta.example/private": DummyResponse("", status=403),
            "https://beta.example/": DummyResponse(_dummy_html("Beta Home")),
        },
    )
    page = metadata.fetch_page_metadata("https://beta.example/private", session)  # type: ignore[arg-type]
    if page.title != "Beta Home":
        raise AssertionError("Expected metadata from the site root")
    if page.icon != "https://beta.example/favicon.ico":
        raise AssertionError("Missing icon should default to /favicon.ico")


def test_fetch_page_metadata_skips_non_html() -> None:
    session = _session_for({"https://gamma.example/a.pdf": DummyResponse("%PDF", content_type="application/pdf")})
    page = metadata.fetch_page_metadata("https://gamma.example/a.pdf", session)  # type: ignore[arg-type]
    if page.title or page.description:
        raise AssertionError("Non-HTML responses must not yield text metadata")


def test_description_is_truncated() -> None:
    long_text = "x" * (metadata.DESCRIPTION_LIMIT + 50)
    session = _session_for({"https://delta.example": DummyResponse(_dummy_html("Delta", long_text))})
    page = metadata.fetch_page_metadata("https://delta.example", session)  # type: ignore[arg-type]
    if len(page.description) != metadata.DESCRIPTION_LIMIT:
        raise AssertionError("Description should be cut to the limit")


def test_enrich_candidates_only_fills_missing() -> None:
    complete = ImportCandidate(
        title="Kept", url="https://kept.example", description="Already here", icon="https://kept.example/i.png",
    )
    bare = ImportCandidate(title="https://bare.example", url="https://bare.example")
    session = _session_for({"https://bare.example": DummyResponse(_dummy_html("Bare Title", "Bare Desc"))})

    original_session = metadata.requests.Session
    metadata.requests.Session = lambda: session  # type: ignore[assignment]
    try:
        enriched = metadata.enrich_candidates([complete, bare])
    finally:
        metadata.requests.Session = original_session

    if enriched[0].title != "Kept" or enriched[0].description != "Already here":
        raise AssertionError("Complete candidates must be left alone")
    if enriched[1].title != "Bare Title" or enriched[1].description != "Bare Desc":
        raise AssertionError("Bare candidate should be populated from HTML")
    if enriched[1].icon != "https://bare.example/favicon.ico":
        raise AssertionError("Bare candidate should receive the default icon")
