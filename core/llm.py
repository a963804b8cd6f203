from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Dict, List, Optional

import anthropic

from core.config import AnthropicSettings, load_anthropic_settings


logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*|\s*```")
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_ARRAY_RE = re.compile(r"\[[\s\S]*\]")


class LLMError(Exception):
    """Raised when a Messages API call fails or returns unusable output."""


class ClaudeClient:
    """Thin wrapper over the Anthropic Messages API with fixed-delay pacing."""

    def __init__(self, settings: Optional[AnthropicSettings] = None, client: Optional[Any] = None):
        self.settings = settings or load_anthropic_settings()
        if client is None:
            if not self.settings.enabled:
                raise LLMError("ANTHROPIC_API_KEY is not set")
            client = anthropic.Anthropic(api_key=self.settings.api_key)
        self._client = client

    def pause(self) -> None:
        if self.settings.request_delay > 0:
            time.sleep(self.settings.request_delay)

    def complete(self, prompt: str, *, max_tokens: Optional[int] = None, temperature: Optional[float] = None) -> str:
        kwargs: Dict[str, Any] = {
            "model": self.settings.model,
            "max_tokens": max_tokens or self.settings.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if temperature is not None:
            kwargs["temperature"] = temperature
        try:
            message = self._client.messages.create(**kwargs)
        except anthropic.APIError as exc:
            raise LLMError(f"Messages API call failed: {exc}") from exc

        parts = [getattr(block, "text", "") for block in (message.content or [])]
        text = "".join(p for p in parts if p)
        if not text:
            raise LLMError("Messages API returned no text content")
        return text


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text or "").strip()


def _extract(text: str, pattern: re.Pattern, kind: str) -> Any:
    match = pattern.search(strip_code_fences(text))
    if not match:
        raise LLMError(f"No JSON {kind} found in response")
    try:
        return json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise LLMError(f"Malformed JSON {kind} in response: {exc}") from exc


def extract_json_object(text: str) -> Dict[str, Any]:
    data = _extract(text, _OBJECT_RE, "object")
    if not isinstance(data, dict):
        raise LLMError("Expected a JSON object")
    return data


def extract_json_array(text: str) -> List[Any]:
    data = _extract(text, _ARRAY_RE, "array")
    if not isinstance(data, list):
        raise LLMError("Expected a JSON array")
    return data
