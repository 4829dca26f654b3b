"""Whole-snapshot backup bundles and the WebDAV transport that stores them.

Restores are last-writer-wins: a bundle either replaces the local snapshot or
is merged in through ``import_data``. Nothing here runs automatically.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Literal

import requests
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .config import BACKUP_FORMAT_VERSION, DEFAULT_TIMEOUT, WEBDAV_BACKUP_FILENAME
from .errors import BackupError
from .models import Category, LinkItem  # noqa: TC001
from .preferences import AIConfig, SearchConfig, WebDavConfig  # noqa: TC001

if TYPE_CHECKING:  # pragma: no cover
    from pathlib import Path

    from .store import BookmarkStore

LOGGER = logging.getLogger(__name__)

RestoreMode = Literal["replace", "merge"]


class BackupBundle(BaseModel):
    """Snapshot plus optional preference blobs, as exported or uploaded."""

    model_config = ConfigDict(populate_by_name=True)

    version: int = BACKUP_FORMAT_VERSION
    exported_at: int = Field(default=0, alias="exportedAt")
    links: list[LinkItem] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)
    webdav_config: WebDavConfig | None = Field(default=None, alias="webDavConfig")
    ai_config: AIConfig | None = Field(default=None, alias="aiConfig")
    search_config: SearchConfig | None = Field(default=None, alias="searchConfig")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)

    @classmethod
    def from_json(cls, raw: str | bytes) -> BackupBundle:
        """Parse a bundle; raises BackupError when it is not one."""
        try:
            return cls.model_validate_json(raw)
        except (PydanticValidationError, ValueError) as exc:
            msg = f"Not a valid backup bundle: {exc}"
            raise BackupError(msg) from exc


def export_bundle(
    store: BookmarkStore,
    *,
    webdav_config: WebDavConfig | None = None,
    ai_config: AIConfig | None = None,
    search_config: SearchConfig | None = None,
) -> BackupBundle:
    """Bundle the current snapshot with the preference blobs supplied."""
    snapshot = store.export_snapshot()
    return BackupBundle(
        exported_at=int(time.time() * 1000),
        links=list(snapshot.links),
        categories=list(snapshot.categories),
        webdav_config=webdav_config,
        ai_config=ai_config,
        search_config=search_config,
    )


def write_bundle(bundle: BackupBundle, path: Path) -> None:
    path.write_text(bundle.to_json() + "\n", encoding="utf-8")
    LOGGER.info("Wrote backup with %d links to %s", len(bundle.links), path)


def read_bundle(path: Path) -> BackupBundle:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"Cannot read backup file {path}: {exc}"
        raise BackupError(msg) from exc
    return BackupBundle.from_json(raw)


def restore_bundle(store: BookmarkStore, bundle: BackupBundle, mode: RestoreMode = "replace") -> int:
    """Apply *bundle* to the store.

    ``replace`` swaps in the whole snapshot via ``update_data`` and returns the
    number of links now stored; ``merge`` goes through ``import_data`` and
    returns the number of links added.
    """
    if mode == "merge":
        added = store.import_data(bundle.links, bundle.categories)
        LOGGER.info("Merged backup: %d new links", added)
        return added
    snapshot = store.update_data(bundle.links, bundle.categories)
    LOGGER.info("Restored backup: %d links, %d categories", len(snapshot.links), len(snapshot.categories))
    return len(snapshot.links)


class WebDavClient:
    """Pushes and pulls one backup file on a WebDAV share.

    Every request carries *timeout*; ``cancel`` closes the session so pending
    and later calls fail with BackupError.
    """

    def __init__(
        self,
        config: WebDavConfig,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        filename: str = WEBDAV_BACKUP_FILENAME,
    ) -> None:
        if not config.url:
            msg = "WebDAV url is not configured"
            raise BackupError(msg)
        self._config = config
        self._session = session or requests.Session()
        self._timeout = timeout
        self._filename = filename
        self._cancelled = False

    @property
    def file_url(self) -> str:
        return f"{self._config.url.rstrip('/')}/{self._filename}"

    def cancel(self) -> None:
        """Abort the transport; the client cannot be reused afterwards."""
        self._cancelled = True
        self._session.close()

    def check_connection(self) -> bool:
        """True when the collection answers a depth-0 PROPFIND."""
        try:
            response = self._request("PROPFIND", self._config.url, headers={"Depth": "0"})
        except BackupError as exc:
            LOGGER.warning("WebDAV connection check failed: %s", exc)
            return False
        return response.status_code in {200, 207}

    def push(self, bundle: BackupBundle) -> None:
        """Upload *bundle*, overwriting the remote copy."""
        self._request(
            "PUT",
            self.file_url,
            data=bundle.to_json().encode("utf-8"),
            headers={"Content-Type": "application/json"},
        )
        LOGGER.info("Uploaded backup with %d links to %s", len(bundle.links), self.file_url)

    def pull(self) -> BackupBundle:
        """Download and parse the remote bundle."""
        response = self._request("GET", self.file_url)
        bundle = BackupBundle.from_json(response.content)
        LOGGER.info("Downloaded backup with %d links from %s", len(bundle.links), self.file_url)
        return bundle

    def _request(self, method: str, url: str, **kwargs: object) -> requests.Response:
        if self._cancelled:
            msg = "WebDAV transfer was cancelled"
            raise BackupError(msg)
        auth = (self._config.username, self._config.password) if self._config.username else None
        try:
            response = self._session.request(method, url, auth=auth, timeout=self._timeout, **kwargs)
            response.raise_for_status()
        except requests.RequestException as exc:
            msg = f"WebDAV {method} {url} failed: {exc}"
            raise BackupError(msg) from exc
        return response
