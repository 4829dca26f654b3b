"""Tests for the file-backed storage port."""
from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from bookmark_nav import persistence
from bookmark_nav.persistence import JsonFileStorage

if TYPE_CHECKING:
    from pathlib import Path


def test_write_then_read(tmp_path: Path) -> None:
    storage = JsonFileStorage(tmp_path / "data")
    if storage.read("bookmark_nav_data_cache") is not None:
        raise AssertionError("Absent keys should read as None")
    storage.write("bookmark_nav_data_cache", '{"links": []}')
    storage.write("bookmark_nav_data_cache", '{"links": [1]}')
    if storage.read("bookmark_nav_data_cache") != '{"links": [1]}':
        raise AssertionError("Last write should win")
    leftovers = [p.name for p in (tmp_path / "data").iterdir() if p.suffix == ".tmp"]
    if leftovers:
        raise AssertionError(f"Temporary files left behind: {leftovers}")


def test_rejects_unsafe_keys(tmp_path: Path) -> None:
    storage = JsonFileStorage(tmp_path)
    with pytest.raises(ValueError, match="Unsupported storage key"):
        storage.write("../escape", "{}")


def test_undecodable_file_reads_as_absent(tmp_path: Path) -> None:
    storage = JsonFileStorage(tmp_path)
    storage.path_for("broken").write_bytes(b"\xff\xfe\xfa")
    if storage.read("broken") is not None:
        raise AssertionError("Unreadable files should be treated as absent")


def test_failed_replace_removes_temp_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    storage = JsonFileStorage(tmp_path)
    storage.write("snapshot", '{"links": []}')

    def _disk_full(_src: object, _dst: object) -> None:
        msg = "No space left on device"
        raise OSError(msg)

    monkeypatch.setattr(persistence.os, "replace", _disk_full)
    with pytest.raises(OSError, match="No space"):
        storage.write("snapshot", '{"links": [1]}')
    if [p.name for p in tmp_path.iterdir()] != ["snapshot.json"]:
        raise AssertionError(f"Temporary file left behind: {sorted(p.name for p in tmp_path.iterdir())}")
    if storage.read("snapshot") != '{"links": []}':
        raise AssertionError("Previous record must survive a failed write")
