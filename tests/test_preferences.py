"""Tests for preference records and search url building."""
from __future__ import annotations

from typing import TYPE_CHECKING

from bookmark_nav.config import AI_CONFIG_KEY, SEARCH_CONFIG_KEY, SITE_SETTINGS_KEY
from bookmark_nav.preferences import (
    AIConfig,
    SiteSettings,
    build_search_url,
    default_search_config,
    load_ai_config,
    load_search_config,
    load_site_settings,
    resolve_search_source,
    save_preference,
)

if TYPE_CHECKING:
    import pytest

    from bookmark_nav.persistence import MemoryStorage


def test_default_search_config_selects_first_source() -> None:
    config = default_search_config(now_ms=1)
    source = resolve_search_source(config)
    if source is None or source.id != "bing":
        raise AssertionError("Bing should be the default search source")
    if build_search_url(source, " café & bar ") != "https://www.bing.com/search?q=caf%C3%A9%20%26%20bar":
        raise AssertionError("Query must be trimmed and url-encoded")


def test_resolve_falls_back_to_first_enabled() -> None:
    config = default_search_config(now_ms=1)
    sources = [s.model_copy(update={"enabled": s.id == "github"}) for s in config.external_sources]
    config = config.model_copy(update={"external_sources": sources, "selected_source": None})
    source = resolve_search_source(config)
    if source is None or source.id != "github":
        raise AssertionError("The first enabled source should be used")


def test_preferences_round_trip_with_camel_case(storage: MemoryStorage) -> None:
    save_preference(storage, SITE_SETTINGS_KEY, SiteSettings(nav_title="Home", card_style="simple"))
    if '"navTitle": "Home"' not in storage.records[SITE_SETTINGS_KEY]:
        raise AssertionError("Preferences should be stored with camelCase keys")
    settings = load_site_settings(storage)
    if settings.nav_title != "Home" or settings.card_style != "simple":
        raise AssertionError("Site settings lost in round trip")


def test_corrupt_preferences_fall_back_to_defaults(storage: MemoryStorage) -> None:
    storage.records[SEARCH_CONFIG_KEY] = "{broken"
    storage.records[SITE_SETTINGS_KEY] = '{"cardStyle": "fancy"}'
    if load_search_config(storage).mode != "external":
        raise AssertionError("Corrupt search config should yield the default")
    if load_site_settings(storage) != SiteSettings():
        raise AssertionError("Invalid site settings should yield the default")


def test_ai_config_defaults_from_environment(storage: MemoryStorage, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "env-key")
    monkeypatch.setenv("BOOKMARK_NAV_AI_MODEL", "env-model")
    config = load_ai_config(storage)
    if config.api_key != "env-key" or config.model != "env-model":
        raise AssertionError("Environment should provide the AI defaults")
    save_preference(storage, AI_CONFIG_KEY, AIConfig(api_key="stored"))
    if load_ai_config(storage).api_key != "stored":
        raise AssertionError("Stored AI settings win over the environment")
