"""LLM client and the LLM-backed thread classifier."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol
from urllib.parse import urljoin

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from order_desk.core.config import LlmSettings
from order_desk.core.interfaces import ClassifierError
from order_desk.core.models import (
    CATEGORIES,
    ITEM_TYPES,
    ClassifierVerdict,
    Correction,
    Thread,
)
from order_desk.core.retry import RetryPolicy

from .prompts import build_classification_prompt

LOGGER = logging.getLogger(__name__)

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class LLMError(RuntimeError):
    """Raised when the LLM provider fails to respond as expected."""


class LLMClient(Protocol):
    """Protocol describing the minimal LLM client behaviour."""

    @property
    def provider_id(self) -> str:
        """Identifier describing the backing model/provider."""
        raise NotImplementedError

    def generate(self, prompt: str) -> str:
        """Return the raw text completion for ``prompt``."""
        raise NotImplementedError


@dataclass(slots=True)
class OllamaClient:
    """Thin synchronous client for the Ollama HTTP API."""

    settings: LlmSettings
    retry: RetryPolicy = field(
        default_factory=lambda: RetryPolicy(
            stage="ollama",
            max_attempts=3,
            base_delay=2.0,
            max_delay=8.0,
            retry_on=(httpx.HTTPError,),
        )
    )

    def generate(self, prompt: str) -> str:
        """Send a completion request to the Ollama server."""
        endpoint = _resolve_endpoint(self.settings.base_url)
        options: dict[str, object] = {"temperature": self.settings.temperature}
        if self.settings.max_output_tokens is not None:
            options["num_predict"] = self.settings.max_output_tokens
        payload: dict[str, object] = {
            "model": self.settings.model,
            "prompt": prompt,
            "stream": False,
            "format": "json",
            "options": options,
        }
        try:
            data = self.retry.execute(self._post, endpoint, payload)
        except httpx.HTTPError as exc:  # pragma: no cover - network dependent
            raise LLMError("LLM request failed after retries") from exc

        result = data.get("response")
        if not isinstance(result, str):
            raise LLMError("LLM response missing 'response' field")
        return result

    def _post(self, endpoint: str, payload: dict[str, object]) -> dict[str, object]:
        response = httpx.post(
            endpoint, json=payload, timeout=self.settings.timeout_seconds
        )
        response.raise_for_status()
        try:
            data = response.json()
        except json.JSONDecodeError as exc:
            raise LLMError("LLM returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise LLMError("LLM returned an unexpected payload")
        return data

    @property
    def provider_id(self) -> str:
        """Return a human readable identifier for the configured model."""
        return f"ollama:{self.settings.model}"


class _VerdictPayload(BaseModel):
    """One thread entry in the classifier response."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    thread_key: str = Field(alias="threadKey")
    category: str | None = None
    item_type: str | None = Field(default=None, alias="itemType")
    contact_name: str | None = Field(default=None, alias="contactName")
    summary: str | None = None
    needs_response: bool | None = Field(default=None, alias="needsResponse")
    related_to: str | None = Field(default=None, alias="relatedTo")

    @field_validator("category")
    @classmethod
    def known_category(cls, value: str | None) -> str | None:
        """Drop categories outside the fixed vocabulary."""
        if value is None:
            return None
        value = value.strip().lower()
        return value if value in CATEGORIES else None

    @field_validator("item_type")
    @classmethod
    def known_item_type(cls, value: str | None) -> str | None:
        """Drop item types outside the fixed vocabulary."""
        if value is None:
            return None
        value = value.strip().lower()
        return value if value in ITEM_TYPES else None

    @field_validator("contact_name", "summary", "related_to")
    @classmethod
    def blank_to_none(cls, value: str | None) -> str | None:
        """Treat empty strings as missing."""
        if value is None:
            return None
        value = value.strip()
        return value or None


class _BatchPayload(BaseModel):
    """Top-level classifier response."""

    model_config = ConfigDict(extra="ignore")

    threads: list[_VerdictPayload]


class LLMThreadClassifier:
    """Classify threads by prompting an :class:`LLMClient` for JSON."""

    def __init__(self, llm_client: LLMClient, *, body_char_limit: int = 1500) -> None:
        """Bind the classifier to an LLM client."""
        self._llm_client = llm_client
        self._body_char_limit = body_char_limit

    @property
    def provider_id(self) -> str:
        """Identifier of the backing model."""
        return self._llm_client.provider_id

    def classify_batch(
        self, threads: Sequence[Thread], corrections: Sequence[Correction]
    ) -> dict[str, ClassifierVerdict]:
        """Return verdicts for ``threads`` keyed by thread key."""
        if not threads:
            return {}
        prompt = build_classification_prompt(
            threads, corrections, body_char_limit=self._body_char_limit
        )
        try:
            raw_output = self._llm_client.generate(prompt)
        except LLMError as exc:
            raise ClassifierError(str(exc)) from exc
        payload = _parse_output(raw_output)

        wanted = {thread.key for thread in threads}
        verdicts: dict[str, ClassifierVerdict] = {}
        for entry in payload.threads:
            if entry.thread_key not in wanted:
                LOGGER.debug(
                    "Ignoring verdict for unknown thread %s", entry.thread_key
                )
                continue
            related = entry.related_to
            if related == entry.thread_key:
                related = None
            verdicts[entry.thread_key] = ClassifierVerdict(
                thread_key=entry.thread_key,
                category=entry.category,
                item_type=entry.item_type,
                contact_name=entry.contact_name,
                summary=entry.summary,
                needs_response=entry.needs_response,
                related_to=related,
            )
        return verdicts


def _parse_output(raw: str) -> _BatchPayload:
    text = _FENCE.sub("", raw.strip())
    try:
        decoded = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ClassifierError("Classifier output was not valid JSON") from exc
    if isinstance(decoded, list):
        decoded = {"threads": decoded}
    try:
        return _BatchPayload.model_validate(decoded)
    except ValidationError as exc:
        raise ClassifierError(f"Classifier output failed validation: {exc}") from exc


def _resolve_endpoint(base_url: str) -> str:
    trimmed = base_url.rstrip("/") + "/"
    return urljoin(trimmed, "api/generate")


__all__ = ["LLMClient", "LLMError", "LLMThreadClassifier", "OllamaClient"]
