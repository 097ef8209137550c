"""Text-generation collaborator backed by the Anthropic Messages API."""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Protocol

from anthropic import AsyncAnthropic

from periodizer.config import Settings, get_settings
from periodizer.exceptions import MalformedResponseError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^\s*```(?:json)?\s*|\s*```\s*$", re.IGNORECASE)


class TextGenerator(Protocol):
    """Anything that turns a prompt into free text. May raise or return junk."""

    async def generate(
        self,
        prompt: str,
        *,
        max_tokens: int,
        temperature: float | None = None,
        system: str | None = None,
    ) -> str:
        ...


class AnthropicTextGenerator:
    """Async Claude client used for summaries, load assignment and drill generation."""

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout: float = 60.0,
    ) -> None:
        self.client = AsyncAnthropic(api_key=api_key, timeout=timeout)
        self.model = model

    async def generate(
        self,
        prompt: str,
        *,
        max_tokens: int,
        temperature: float | None = None,
        system: str | None = None,
    ) -> str:
        request_payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if temperature is not None:
            request_payload["temperature"] = temperature
        if system:
            request_payload["system"] = system

        logger.debug("Text generation request (model=%s, max_tokens=%d):\n%s", self.model, max_tokens, prompt)
        try:
            response = await self.client.messages.create(**request_payload)
        except Exception:
            logger.exception("Text generation request failed (model=%s)", self.model)
            raise

        if not response.content:
            logger.warning("Text generation returned no content (model=%s)", self.model)
            return ""
        text = getattr(response.content[0], "text", "") or ""
        logger.debug("Text generation response (%d chars):\n%s", len(text), text)
        return text


def build_text_generator(settings: Settings | None = None) -> TextGenerator | None:
    """Return the configured generator, or None when no API key is set."""

    settings = settings or get_settings()
    if not settings.anthropic_api_key:
        logger.info("ANTHROPIC_API_KEY not set; text generation disabled")
        return None
    return AnthropicTextGenerator(
        api_key=settings.anthropic_api_key,
        model=settings.anthropic_model,
        timeout=settings.anthropic_timeout_seconds,
    )


def parse_json_payload(text: str | None) -> dict[str, Any]:
    """Extract a JSON object from model output.

    Markdown code fences are stripped first; if the remainder is not valid JSON
    the outermost ``{...}`` span is tried.

    Raises:
        MalformedResponseError: No JSON object could be recovered.
    """
    if not text or not text.strip():
        raise MalformedResponseError("Empty response")

    cleaned = _FENCE_RE.sub("", text.strip())
    try:
        result = json.loads(cleaned)
    except json.JSONDecodeError:
        start = cleaned.find("{")
        end = cleaned.rfind("}") + 1
        if start < 0 or end <= start:
            raise MalformedResponseError("No JSON object found in response") from None
        try:
            result = json.loads(cleaned[start:end])
        except json.JSONDecodeError as exc:
            raise MalformedResponseError(f"Invalid JSON in response: {exc}") from exc

    if not isinstance(result, dict):
        raise MalformedResponseError(f"Expected a JSON object, got {type(result).__name__}")
    return result
