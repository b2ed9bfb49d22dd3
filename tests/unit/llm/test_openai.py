"""
Tests for OpenAI Provider.

Tests OpenAI provider implementation with mocked API calls.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from querymesh.llm.models import LLMMessage, LLMRequest
from querymesh.llm.openai import OpenAIProvider


@pytest.fixture
def provider():
    """Create OpenAI provider instance."""
    return OpenAIProvider(
        api_key="sk-test-key-1234567890abcdefghij",
        model="gpt-4o",
        temperature=0.0,
        max_tokens=2000,
        timeout=30,
    )


def _completion(content: str = "{}", finish_reason: str = "stop") -> MagicMock:
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    response.choices[0].finish_reason = finish_reason
    response.model = "gpt-4o"
    response.usage.prompt_tokens = 10
    response.usage.completion_tokens = 5
    response.usage.total_tokens = 15
    response.id = "chatcmpl-123"
    response.created = 1234567890
    return response


class TestOpenAIProviderInit:
    """Test OpenAI provider initialization."""

    def test_initialization(self, provider):
        assert provider.model == "gpt-4o"
        assert provider.temperature == 0.0
        assert provider.max_tokens == 2000
        assert provider.timeout == 30
        assert provider.provider_name == "openai"


class TestGenerate:
    """Test generate method."""

    @pytest.mark.asyncio
    async def test_successful_generation(self, provider):
        with patch.object(
            provider.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            return_value=_completion('{"ok": true}'),
        ):
            response = await provider.generate(
                LLMRequest(messages=[LLMMessage(role="user", content="Hello!")])
            )

        assert response.content == '{"ok": true}'
        assert response.usage.total_tokens == 15
        assert response.finish_reason == "stop"
        assert response.provider == "openai"

    @pytest.mark.asyncio
    async def test_applies_defaults(self, provider):
        mock_create = AsyncMock(return_value=_completion())
        with patch.object(provider.client.chat.completions, "create", mock_create):
            await provider.generate(LLMRequest(messages=[LLMMessage(role="user", content="Test")]))

        call_kwargs = mock_create.call_args.kwargs
        assert call_kwargs["temperature"] == 0.0
        assert call_kwargs["max_tokens"] == 2000

    @pytest.mark.asyncio
    async def test_json_mode_sets_response_format(self, provider):
        mock_create = AsyncMock(return_value=_completion())
        with patch.object(provider.client.chat.completions, "create", mock_create):
            await provider.generate(
                LLMRequest(
                    messages=[LLMMessage(role="user", content="Test")],
                    json_mode=True,
                )
            )

        assert mock_create.call_args.kwargs["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_request_metadata_is_not_sent_to_api(self, provider):
        mock_create = AsyncMock(return_value=_completion())
        with patch.object(provider.client.chat.completions, "create", mock_create):
            await provider.generate(
                LLMRequest(
                    messages=[LLMMessage(role="user", content="Test")],
                    metadata={"stage": "ranking", "prompt": "agents/ranking.md"},
                )
            )

        call_kwargs = mock_create.call_args.kwargs
        assert "stage" not in call_kwargs
        assert "prompt" not in call_kwargs

    @pytest.mark.asyncio
    async def test_unknown_finish_reason_maps_to_stop(self, provider):
        with patch.object(
            provider.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            return_value=_completion(finish_reason="tool_calls"),
        ):
            response = await provider.generate(
                LLMRequest(messages=[LLMMessage(role="user", content="Test")])
            )

        assert response.finish_reason == "stop"
