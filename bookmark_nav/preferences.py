"""Preference records stored beside the bookmark snapshot.

These share the storage port with the store but carry no invariants linked to
links or categories. Corrupt records fall back to defaults.
"""

from __future__ import annotations

import logging
import os
import time
from typing import TYPE_CHECKING, Literal, TypeVar
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .config import AI_CONFIG_KEY, AI_MODEL_ENV, SEARCH_CONFIG_KEY, SITE_SETTINGS_KEY, WEBDAV_CONFIG_KEY

if TYPE_CHECKING:  # pragma: no cover
    from .persistence import StoragePort

LOGGER = logging.getLogger(__name__)

DEFAULT_AI_MODEL = "gpt-4.1-mini"

PrefT = TypeVar("PrefT", bound=BaseModel)


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class WebDavConfig(_CamelModel):
    """Remote backup target."""

    url: str = ""
    username: str = ""
    password: str = ""
    enabled: bool = False


class AIConfig(_CamelModel):
    """Settings for the OpenAI-compatible assistant."""

    provider: str = "openai"
    api_key: str = Field(default="", alias="apiKey")
    base_url: str = Field(default="", alias="baseUrl")
    model: str = DEFAULT_AI_MODEL

    @classmethod
    def from_env(cls) -> AIConfig:
        """Defaults overridden by ``OPENAI_API_KEY``/``OPENAI_BASE_URL`` and the model env var."""
        return cls(
            api_key=os.getenv("OPENAI_API_KEY", ""),
            base_url=os.getenv("OPENAI_BASE_URL", ""),
            model=os.getenv(AI_MODEL_ENV) or DEFAULT_AI_MODEL,
        )


class SearchSource(_CamelModel):
    """An external search engine with a ``{query}`` URL template."""

    id: str
    name: str
    url: str
    icon: str = "Search"
    enabled: bool = True
    created_at: int = Field(default=0, alias="createdAt")


class SearchConfig(_CamelModel):
    """Search mode plus the configured external sources."""

    mode: Literal["internal", "external"] = "external"
    external_sources: list[SearchSource] = Field(default_factory=list, alias="externalSources")
    selected_source: SearchSource | None = Field(default=None, alias="selectedSource")


class SiteSettings(_CamelModel):
    """Page title, navigation title, favicon and card style."""

    title: str = "Bookmark Nav"
    nav_title: str = Field(default="Bookmark Nav", alias="navTitle")
    favicon: str = ""
    card_style: Literal["detailed", "simple"] = Field(default="detailed", alias="cardStyle")


_DEFAULT_SOURCES: tuple[tuple[str, str, str, str], ...] = (
    ("bing", "Bing", "https://www.bing.com/search?q={query}", "Search"),
    ("google", "Google", "https://www.google.com/search?q={query}", "Search"),
    ("duckduckgo", "DuckDuckGo", "https://duckduckgo.com/?q={query}", "Globe"),
    ("github", "GitHub", "https://github.com/search?q={query}", "Github"),
    ("youtube", "YouTube", "https://www.youtube.com/results?search_query={query}", "Video"),
    ("wikipedia", "Wikipedia", "https://en.wikipedia.org/wiki/Special:Search?search={query}", "BookOpen"),
)


def default_search_config(now_ms: int | None = None) -> SearchConfig:
    """External search over the built-in sources, the first one selected."""
    created = now_ms if now_ms is not None else int(time.time() * 1000)
    sources = [
        SearchSource(id=sid, name=name, url=url, icon=icon, created_at=created)
        for sid, name, url, icon in _DEFAULT_SOURCES
    ]
    return SearchConfig(mode="external", external_sources=sources, selected_source=sources[0])


def resolve_search_source(config: SearchConfig) -> SearchSource | None:
    """The selected source, else the first enabled one."""
    if config.selected_source is not None:
        return config.selected_source
    return next((source for source in config.external_sources if source.enabled), None)


def build_search_url(source: SearchSource, query: str) -> str:
    """Substitute the url-encoded *query* into the source template."""
    return source.url.replace("{query}", quote(query.strip(), safe=""))


def load_preference(storage: StoragePort, key: str, model: type[PrefT], default: PrefT) -> PrefT:
    """Load a preference record; absent or corrupt data yields *default*."""
    raw = storage.read(key)
    if raw is None:
        return default
    try:
        return model.model_validate_json(raw)
    except (PydanticValidationError, ValueError) as exc:
        LOGGER.warning("Ignoring unreadable preference %s (%s)", key, exc)
        return default


def save_preference(storage: StoragePort, key: str, value: BaseModel) -> None:
    """Persist a preference record under *key*."""
    storage.write(key, value.model_dump_json(by_alias=True, indent=2))


def load_webdav_config(storage: StoragePort) -> WebDavConfig:
    return load_preference(storage, WEBDAV_CONFIG_KEY, WebDavConfig, WebDavConfig())


def load_ai_config(storage: StoragePort) -> AIConfig:
    return load_preference(storage, AI_CONFIG_KEY, AIConfig, AIConfig.from_env())


def load_search_config(storage: StoragePort) -> SearchConfig:
    return load_preference(storage, SEARCH_CONFIG_KEY, SearchConfig, default_search_config())


def load_site_settings(storage: StoragePort) -> SiteSettings:
    return load_preference(storage, SITE_SETTINGS_KEY, SiteSettings, SiteSettings())
