"""Tests the assistant's retry/backoff, validation filtering and description fill.

The OpenAI client is mocked to first return malformed JSON, then valid output.
"""
from __future__ import annotations

import json
from types import SimpleNamespace
from typing import TYPE_CHECKING, Any

import pytest

from bookmark_nav import assistant as assistant_module
from bookmark_nav.assistant import LinkAssistant, fill_missing_descriptions
from bookmark_nav.errors import AssistantError
from bookmark_nav.preferences import AIConfig

from conftest import make_link

if TYPE_CHECKING:
    from bookmark_nav.store import BookmarkStore


class DummyChoice:
    def __init__(self, content: str) -> None:
        self.message = SimpleNamespace(content=content)


class DummyResponse:
    def __init__(self, content: str) -> None:
        self.choices = [DummyChoice(content)]


class DummyClient:
    """Replays canned payloads (or raises them when they are exceptions)."""

    def __init__(self, payloads: list[str | Exception]) -> None:
        self._payloads = payloads
        self.calls: list[dict[str, Any]] = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, **kwargs: Any) -> DummyResponse:
        if len(self.calls) >= len(self._payloads):
            raise RuntimeError("No more dummy payloads")
        payload = self._payloads[len(self.calls)]
        self.calls.append(kwargs)
        if isinstance(payload, Exception):
            raise payload
        return DummyResponse(payload)


@pytest.fixture(autouse=True)
def _no_sleep(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(assistant_module.time, "sleep", lambda _seconds: None)


def _assistant(payloads: list[str | Exception], **kwargs: Any) -> tuple[LinkAssistant, DummyClient]:
    client = DummyClient(payloads)
    helper = LinkAssistant(AIConfig(api_key="test-key"), **kwargs)
    helper.set_client(client)
    return helper, client


def test_retry_and_validation(store: BookmarkStore) -> None:
    malformed = json.dumps({"oops": 1})  # triggers TypeError (not list)
    valid_list = json.dumps(
        [
            {"index": 0, "description": "Docs for A", "categoryId": "work"},
            {"index": 1, "description": "Site B", "categoryId": "nowhere"},
            {"description": "missing index"},
        ],
    )
    helper, client = _assistant([malformed, valid_list])
    links = [make_link("a"), make_link("b")]
    out = helper.suggest(links, store.categories)

    if len(client.calls) != 2:
        raise AssertionError("Expected exactly one retry")
    if out["a"].description != "Docs for A" or out["a"].category_id != "work":
        raise AssertionError("Valid suggestion not returned")
    if out["b"].category_id != "":
        raise AssertionError("Unknown categories must be blanked")


def test_gives_up_after_max_attempts(store: BookmarkStore) -> None:
    helper, client = _assistant(["not json", "[]", "{}"])
    with pytest.raises(AssistantError):
        helper.suggest([make_link("a")], store.categories)
    if len(client.calls) != 3:
        raise AssertionError("Expected three attempts")


def test_switches_to_fallback_model(store: BookmarkStore) -> None:
    ok = json.dumps([{"index": 0, "description": "Fine"}])
    helper, client = _assistant(
        [RuntimeError("The model `gpt-x` does not exist"), ok],
        fallback_model="backup-model",
    )
    helper.suggest([make_link("a")], store.categories)
    if client.calls[1]["model"] != "backup-model":
        raise AssertionError("Second attempt should use the fallback model")


def test_batches_keep_global_indexes(store: BookmarkStore) -> None:
    helper, client = _assistant(
        [
            json.dumps([{"index": 0, "description": "zero"}]),
            json.dumps([{"index": 1, "description": "one"}]),
        ],
        batch_size=1,
    )
    out = helper.suggest([make_link("a"), make_link("b")], store.categories)
    if {key: value.description for key, value in out.items()} != {"a": "zero", "b": "one"}:
        raise AssertionError(f"Unexpected batch results: {out}")
    payload = json.loads(client.calls[1]["messages"][1]["content"])
    if payload["links"][0]["index"] != 1:
        raise AssertionError("Second batch should continue the index sequence")


def test_fill_missing_descriptions(work_store: BookmarkStore) -> None:
    work_store.update_link("2", description="Keep me")
    helper, _client = _assistant(
        [json.dumps([{"index": 0, "description": "One"}, {"index": 1, "description": "Three"}])],
    )
    changed = fill_missing_descriptions(work_store, helper)
    if changed != 2:
        raise AssertionError(f"Expected two filled descriptions, got {changed}")
    descriptions = {link.id: link.description for link in work_store.links}
    if descriptions != {"1": "One", "2": "Keep me", "3": "Three"}:
        raise AssertionError(f"Unexpected descriptions: {descriptions}")
