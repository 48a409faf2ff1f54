"""Importance classification of incoming mail.

:class:`ClassifierAdapter` is the seam the pipeline depends on;
:class:`LLMClassifier` implements it against an OpenAI-compatible
chat-completions endpoint that is asked for a JSON verdict.
"""

from __future__ import annotations

import abc
import json
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from .config import ClassifierConfig
from .errors import ClassificationError
from .models import Verdict

logger = structlog.get_logger()

PROMPT_TEMPLATE = """You are an assistant helping a user filter their email inbox. Analyze the following email.
Email Subject: "{subject}"
Email Body:
"{body}"

1. Determine if this email requires the urgent attention or action of the user. Consider direct requests, deadlines, important announcements, or messages from key contacts.
2. If it is important, provide a concise summary of the email in no more than 3 sentences.
3. Also, provide a brief reason why this email was flagged as important.

Respond ONLY with a JSON object matching this schema:
{{
  "important": boolean, // true if the email is important, false otherwise
  "summary": "string", // The 3-sentence (or less) summary if important, otherwise an empty string.
  "reason_for_importance": "string" // Brief reason why it's important, or an empty string if not.
}}"""


class ClassifierAdapter(abc.ABC):
    """Produces a :class:`Verdict` for one message.

    Implementations raise :class:`ClassificationError` on any failure;
    the pipeline turns that into a stored failed verdict.
    """

    async def start(self) -> None:
        """Acquire resources (HTTP clients, model handles).  Optional."""

    async def stop(self) -> None:
        """Release resources acquired in :meth:`start`.  Optional."""

    @abc.abstractmethod
    async def classify(self, subject: str, body_text: str) -> Verdict:
        ...


def parse_verdict(payload: Any) -> Verdict:
    """Validate a decoded JSON verdict object.

    Accepts ``reason_for_importance`` or ``reason`` for the reason field.
    Types are checked strictly: ``"true"`` is not a boolean here.
    """
    if not isinstance(payload, dict):
        raise ClassificationError(f"verdict must be a JSON object, got {type(payload).__name__}")

    reason = payload.get("reason_for_importance", payload.get("reason"))
    try:
        return Verdict.model_validate(
            {
                "important": payload.get("important"),
                "summary": payload.get("summary"),
                "reason": reason,
            }
        )
    except ValidationError as exc:
        fields = ", ".join(sorted({str(error["loc"][0]) for error in exc.errors()}))
        raise ClassificationError(f"verdict has invalid fields: {fields}") from exc


class LLMClassifier(ClassifierAdapter):
    """Chat-completions classifier using JSON response mode."""

    def __init__(self, config: ClassifierConfig) -> None:
        self._config = config
        self._client: httpx.AsyncClient | None = None

    async def start(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=self._config.base_url,
            timeout=httpx.Timeout(self._config.timeout_seconds),
            headers={"Authorization": f"Bearer {self._config.api_key.get_secret_value()}"},
        )
        logger.info("classifier_started", base_url=self._config.base_url, model=self._config.model)

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("classifier_stopped")

    def build_prompt(self, subject: str, body_text: str) -> str:
        body = body_text[: self._config.max_body_chars]
        return PROMPT_TEMPLATE.format(subject=subject, body=body)

    async def classify(self, subject: str, body_text: str) -> Verdict:
        if self._client is None:
            raise ClassificationError("classifier not started")

        request = {
            "model": self._config.model,
            "messages": [{"role": "user", "content": self.build_prompt(subject, body_text)}],
            "response_format": {"type": "json_object"},
            "temperature": 0,
        }
        try:
            response = await self._client.post("/chat/completions", json=request)
            response.raise_for_status()
            content = response.json()["choices"][0]["message"]["content"]
        except httpx.HTTPError as exc:
            raise ClassificationError(f"classifier request failed: {exc}") from exc
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ClassificationError(f"unexpected completion payload: {exc!r}") from exc

        if not content:
            raise ClassificationError("classifier returned an empty response")
        try:
            payload = json.loads(content)
        except (TypeError, json.JSONDecodeError) as exc:
            raise ClassificationError(f"classifier response is not JSON: {exc}") from exc
        return parse_verdict(payload)
