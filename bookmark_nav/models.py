"""Data models for the bookmark navigator."""

from __future__ import annotations

from dataclasses import dataclass

from attrs import Factory, define
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import DEFAULT_CATEGORY_ICON, FALLBACK_CATEGORY_ID, FALLBACK_CATEGORY_NAME


class LinkItem(BaseModel):
    """A stored bookmark.

    Instances are frozen; the store produces changed copies with ``model_copy``.
    JSON keys use the camelCase names of the persisted format.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    title: str
    url: str
    description: str | None = None
    icon: str | None = None
    category_id: str = Field(default=FALLBACK_CATEGORY_ID, alias="categoryId")
    created_at: int = Field(alias="createdAt")
    order: int | None = None
    pinned: bool = False
    pinned_order: int | None = Field(default=None, alias="pinnedOrder")

    @field_validator("title", "url", mode="before")
    @classmethod
    def _strip_text(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value


class Category(BaseModel):
    """A named bucket of links."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str
    icon: str = DEFAULT_CATEGORY_ICON
    order: int | None = None


class Snapshot(BaseModel):
    """The full ``(links, categories)`` pair, persisted and published as one unit."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    links: tuple[LinkItem, ...] = ()
    categories: tuple[Category, ...] = ()

    def find_link(self, link_id: str) -> LinkItem | None:
        """Return the link with *link_id*, or None."""
        return next((link for link in self.links if link.id == link_id), None)

    def category_ids(self) -> set[str]:
        """Return the ids of all stored categories."""
        return {category.id for category in self.categories}

    def to_json(self) -> str:
        """Serialise to the persisted JSON shape."""
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)

    @classmethod
    def from_json(cls, raw: str) -> Snapshot:
        """Parse the persisted JSON shape (raises pydantic's ValidationError)."""
        return cls.model_validate_json(raw)


def default_categories() -> tuple[Category, ...]:
    """Categories of a fresh store: only the fallback bucket."""
    return (Category(id=FALLBACK_CATEGORY_ID, name=FALLBACK_CATEGORY_NAME, icon="Star"),)


class LinkDraft(BaseModel):
    """User supplied fields of a link that does not exist yet."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = ""
    url: str = ""
    description: str | None = None
    icon: str | None = None
    category_id: str = Field(default=FALLBACK_CATEGORY_ID, alias="categoryId")
    pinned: bool = False

    @field_validator("title", "url", mode="before")
    @classmethod
    def _strip_text(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value


@dataclass(slots=True)
class ImportCandidate:
    """Bookmark entry captured from an exported bookmark file."""

    title: str
    url: str
    folder: str = ""
    description: str = ""
    icon: str | None = None


@dataclass(slots=True)
class PageMetadata:
    """Metadata scraped from a bookmark target."""

    title: str = ""
    description: str = ""
    icon: str = ""


class LinkSuggestionModel(BaseModel):
    """A single AI assistant output entry."""

    model_config = ConfigDict(populate_by_name=True)

    index: int
    description: str = ""
    category_id: str = Field(default="", alias="categoryId")

    @field_validator("description", "category_id", mode="before")
    @classmethod
    def _clean_text(cls, value: object) -> str:
        return str(value).strip() if value is not None else ""


@define(slots=True, init=False)
class ExportFolder:
    """Folder node used when rendering the bookmark export HTML."""

    name: str
    links: list[LinkItem] = Factory(lambda: list[LinkItem]())

    def __init__(self, name: str) -> None:
        """Initialise the folder node."""
        self.name = name
        self.links = []

    def add_link(self, link: LinkItem) -> None:
        """Add a link to the folder."""
        self.links.append(link)
