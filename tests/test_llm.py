"""
Messages API wrapper tests (the Anthropic client is always mocked)
"""
from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import anthropic
import httpx
import pytest

from core.config import AnthropicSettings, load_anthropic_settings
from core.llm import ClaudeClient, LLMError, extract_json_array, extract_json_object, strip_code_fences


def _reply(*texts):
    return SimpleNamespace(content=[SimpleNamespace(type="text", text=t) for t in texts])


@pytest.fixture
def settings():
    return AnthropicSettings(api_key="test-key", model="claude-test", max_tokens=1000, request_delay=0)


class TestClaudeClient:
    def test_complete_joins_text_blocks(self, settings):
        sdk = MagicMock()
        sdk.messages.create.return_value = _reply('{"a": ', "1}")
        client = ClaudeClient(settings, client=sdk)

        assert client.complete("hello", max_tokens=200, temperature=0.1) == '{"a": 1}'
        sdk.messages.create.assert_called_once_with(
            model="claude-test",
            max_tokens=200,
            messages=[{"role": "user", "content": "hello"}],
            temperature=0.1,
        )

    def test_default_max_tokens_and_no_temperature(self, settings):
        sdk = MagicMock()
        sdk.messages.create.return_value = _reply("ok")
        ClaudeClient(settings, client=sdk).complete("hi")
        kwargs = sdk.messages.create.call_args.kwargs
        assert kwargs["max_tokens"] == 1000
        assert "temperature" not in kwargs

    def test_api_error_is_wrapped(self, settings):
        sdk = MagicMock()
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        sdk.messages.create.side_effect = anthropic.APIConnectionError(request=request)
        with pytest.raises(LLMError):
            ClaudeClient(settings, client=sdk).complete("hi")

    def test_empty_reply(self, settings):
        sdk = MagicMock()
        sdk.messages.create.return_value = _reply()
        with pytest.raises(LLMError):
            ClaudeClient(settings, client=sdk).complete("hi")

    def test_missing_api_key(self):
        with pytest.raises(LLMError):
            ClaudeClient(AnthropicSettings(api_key=None))


def test_settings_from_env():
    s = load_anthropic_settings({"ANTHROPIC_API_KEY": "k", "ANTHROPIC_REQUEST_DELAY_MS": "250"})
    assert s.enabled
    assert s.request_delay == 0.25
    assert s.model.startswith("claude-")


class TestJsonExtraction:
    def test_strip_fences(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_object_inside_prose(self):
        assert extract_json_object('Sure! {"score": 0.5, "tags": ["x"]} Hope that helps.') == {
            "score": 0.5,
            "tags": ["x"],
        }

    def test_array(self):
        assert extract_json_array("```\n[1, 2]\n```") == [1, 2]

    @pytest.mark.parametrize("text", ["no json here", "{not: valid}", ""])
    def test_bad_object(self, text):
        with pytest.raises(LLMError):
            extract_json_object(text)
