"""Key/value storage ports the store and preference loaders persist through."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Protocol

LOGGER = logging.getLogger(__name__)

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class StoragePort(Protocol):
    """A single serialised record per fixed key."""

    def read(self, key: str) -> str | None:
        """Return the stored text for *key*, or None when absent."""
        ...

    def write(self, key: str, value: str) -> None:
        """Overwrite the record stored under *key*."""
        ...


class MemoryStorage:
    """In-process storage, used by tests and throwaway sessions."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.records: dict[str, str] = dict(initial or {})

    def read(self, key: str) -> str | None:
        return self.records.get(key)

    def write(self, key: str, value: str) -> None:
        self.records[key] = value


class JsonFileStorage:
    """One ``<key>.json`` file per key inside *directory*.

    Writes go to a temp file first and are swapped in with ``os.replace``.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = directory.expanduser()

    def path_for(self, key: str) -> Path:
        """Return the file backing *key*."""
        if not _SAFE_KEY.match(key):
            msg = f"Unsupported storage key: {key!r}"
            raise ValueError(msg)
        return self.directory / f"{key}.json"

    def read(self, key: str) -> str | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            LOGGER.warning("Failed to read %s (%s); treating as absent", path, exc)
            return None

    def write(self, key: str, value: str) -> None:
        path = self.path_for(key)
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        try:
            tmp.write_text(value, encoding="utf-8")
            os.replace(tmp, path)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise
        LOGGER.debug("Wrote %d bytes to %s", len(value), path)
