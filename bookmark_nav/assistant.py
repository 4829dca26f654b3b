"""AI assistant that suggests descriptions and categories for links."""

from __future__ import annotations

import json
import logging
import os
import time
from typing import TYPE_CHECKING, cast

from openai import OpenAI, OpenAIError

from .errors import AssistantError
from .models import LinkSuggestionModel
from .preferences import DEFAULT_AI_MODEL, AIConfig

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Sequence

    from openai.types.chat import ChatCompletion, ChatCompletionMessageParam

    from .models import Category, LinkItem
    from .store import BookmarkStore

LOGGER = logging.getLogger(__name__)

SYSTEM_PROMPT = """You help organise a personal collection of web bookmarks.
You MUST respond with valid JSON only (no prose) using the following schema:
[
    {
        "index": <int>,
        "description": <string>,
        "categoryId": <string>
    }
]

Rules:
- Return one entry per input link, keeping its `index`.
- `description` is a single short sentence (at most 30 words) saying what the site offers.
- `categoryId` must be one of the supplied category ids, or "" when none fits.
"""


class LinkAssistant:
    """OpenAI-compatible chat client producing link suggestions.

    If the configured model is unavailable, the first failed attempt switches to
    a fallback model (env ``OPENAI_FALLBACK_MODEL``, else the default model).
    """

    def __init__(
        self,
        config: AIConfig | None = None,
        batch_size: int = 20,
        fallback_model: str | None = None,
    ) -> None:
        """Initialise the assistant.

        Args:
            config: API key, base url and model; defaults to the environment.
            batch_size: Number of links per LLM call.
            fallback_model: Model used when the configured one is missing.

        """
        config = config or AIConfig.from_env()
        try:
            self._client = OpenAI(
                api_key=config.api_key or None,
                base_url=config.base_url or None,
            )
        except OpenAIError as exc:
            msg = f"Cannot create the AI client: {exc}"
            raise AssistantError(msg) from exc
        self._model = config.model or DEFAULT_AI_MODEL
        self._fallback_model = str(fallback_model or os.getenv("OPENAI_FALLBACK_MODEL") or DEFAULT_AI_MODEL)
        self._batch_size = max(1, batch_size)

    def set_client(self, client: object) -> None:  # pragma: no cover - test helper
        """Inject a mock / custom OpenAI-like client (testing only)."""
        self._client = client  # type: ignore[assignment]

    def suggest(
        self,
        links: Sequence[LinkItem],
        categories: Sequence[Category],
    ) -> dict[str, LinkSuggestionModel]:
        """Return suggestions keyed by link id; links without output are absent."""
        category_ids = {category.id for category in categories}
        results: dict[str, LinkSuggestionModel] = {}
        for start in range(0, len(links), self._batch_size):
            chunk = links[start : start + self._batch_size]
            messages = self._build_messages(chunk, start, categories)
            LOGGER.info(
                "Requesting suggestions from model %s for links %d-%d",
                self._model,
                start,
                start + len(chunk) - 1,
            )
            index_map = {item.index: item for item in self._invoke_with_retry(messages)}
            for idx, link in enumerate(chunk, start=start):
                entry = index_map.get(idx)
                if entry is None:
                    LOGGER.warning("No suggestion for link %s; leaving it unchanged", link.id)
                    continue
                if entry.category_id and entry.category_id not in category_ids:
                    LOGGER.debug("Dropping unknown category %r suggested for %s", entry.category_id, link.id)
                    entry = entry.model_copy(update={"category_id": ""})
                results[link.id] = entry
        return results

    def _invoke_with_retry(
        self,
        messages: list[ChatCompletionMessageParam],
        max_attempts: int = 3,
        backoff_seconds: float = 2.0,
    ) -> list[LinkSuggestionModel]:
        last_error: Exception | None = None
        for attempt in range(1, max_attempts + 1):
            try:
                response = self._client.chat.completions.create(
                    model=self._model,
                    messages=messages,
                    temperature=0.2,
                )
                validated = [
                    item
                    for item in (self._validate_item(obj) for obj in self._extract_items(response))
                    if item is not None
                ]
                if validated:
                    return validated
                last_error = ValueError("No valid items after validation")
            except Exception as exc:  # noqa: BLE001
                last_error = exc
                if self._switch_to_fallback(exc, attempt):
                    continue
                LOGGER.warning(
                    "LLM attempt %d/%d failed: %s; retrying in %.1fs",
                    attempt,
                    max_attempts,
                    exc,
                    backoff_seconds * attempt,
                )
            if attempt < max_attempts:
                time.sleep(backoff_seconds * attempt)

        msg = f"All {max_attempts} assistant attempts failed"
        raise AssistantError(msg) from last_error

    def _switch_to_fallback(self, exc: Exception, attempt: int) -> bool:
        message = str(exc).lower()
        if (
            attempt == 1
            and self._fallback_model != self._model
            and "model" in message
            and ("not found" in message or "does not exist" in message)
        ):
            LOGGER.warning(
                "Primary model '%s' unavailable; switching to fallback '%s'",
                self._model,
                self._fallback_model,
            )
            self._model = self._fallback_model
            return True
        return False

    @staticmethod
    def _extract_items(response: ChatCompletion) -> list[dict[str, object]]:
        if not response.choices:
            msg = "LLM response missing choices"
            raise RuntimeError(msg)
        content = response.choices[0].message.content
        if content is None:
            msg = "LLM response content empty"
            raise RuntimeError(msg)
        raw_obj: object = json.loads(content)
        if not isinstance(raw_obj, list):
            msg = "LLM response root is not a list"
            raise TypeError(msg)
        return [cast("dict[str, object]", item) for item in raw_obj if isinstance(item, dict)]

    @staticmethod
    def _validate_item(obj: dict[str, object]) -> LinkSuggestionModel | None:
        if "index" not in obj:
            LOGGER.warning("Skipping item missing index: %r", obj)
            return None
        try:
            return LinkSuggestionModel.model_validate(obj)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Validation failed for item %r: %s", obj, exc)
            return None

    @staticmethod
    def _build_messages(
        links: Sequence[LinkItem],
        start_index: int,
        categories: Sequence[Category],
    ) -> list[ChatCompletionMessageParam]:
        payload = {
            "categories": [{"id": c.id, "name": c.name} for c in categories],
            "links": [
                {"index": start_index + offset, "title": link.title, "url": link.url}
                for offset, link in enumerate(links)
            ],
        }
        return [
            {"role": "system", "content": SYSTEM_PROMPT.strip()},
            {"role": "user", "content": json.dumps(payload, ensure_ascii=False)},
        ]


def fill_missing_descriptions(store: BookmarkStore, assistant: LinkAssistant) -> int:
    """Ask the assistant for every link lacking a description.

    Results are applied with a single ``update_data`` call; categories are left
    alone. Returns the number of links changed.
    """
    snapshot = store.snapshot
    missing = [link for link in snapshot.links if not link.description]
    if not missing:
        LOGGER.info("Every link already has a description")
        return 0
    suggestions = assistant.suggest(missing, snapshot.categories)
    changed = 0
    links: list[LinkItem] = []
    for link in snapshot.links:
        suggestion = suggestions.get(link.id)
        if suggestion is not None and suggestion.description and not link.description:
            link = link.model_copy(update={"description": suggestion.description})
            changed += 1
        links.append(link)
    if changed:
        store.update_data(links, snapshot.categories)
    LOGGER.info("Filled descriptions for %d of %d links", changed, len(missing))
    return changed
