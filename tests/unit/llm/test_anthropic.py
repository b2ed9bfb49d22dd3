"""Tests for Anthropic Provider and the OpenAI embedding service."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from querymesh.llm.anthropic import AnthropicProvider
from querymesh.llm.embeddings import OpenAIEmbeddingService, cosine_similarity
from querymesh.llm.models import LLMMessage, LLMRequest


def _message(text: str, stop_reason: str = "end_turn") -> SimpleNamespace:
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=text)],
        model="claude-3-5-sonnet-20241022",
        usage=SimpleNamespace(input_tokens=12, output_tokens=8),
        stop_reason=stop_reason,
        id="msg_123",
    )


@pytest.fixture
def client():
    client = MagicMock()
    client.messages.create = AsyncMock(return_value=_message('"ok": true}'))
    return client


@pytest.fixture
def provider(client):
    return AnthropicProvider(api_key="sk-ant-test-key-1234567890", client=client)


class TestAnthropicGenerate:
    @pytest.mark.asyncio
    async def test_system_prompt_is_sent_separately(self, provider, client):
        await provider.generate(
            LLMRequest(
                messages=[
                    LLMMessage(role="system", content="You are an analyst."),
                    LLMMessage(role="user", content="Hi"),
                ]
            )
        )

        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["system"] == "You are an analyst."
        assert kwargs["messages"] == [{"role": "user", "content": "Hi"}]

    @pytest.mark.asyncio
    async def test_json_mode_prefills_brace(self, provider, client):
        response = await provider.generate(
            LLMRequest(messages=[LLMMessage(role="user", content="Hi")], json_mode=True)
        )

        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["messages"][-1] == {"role": "assistant", "content": "{"}
        assert response.content == '{"ok": true}'
        assert response.usage.total_tokens == 20

    @pytest.mark.asyncio
    async def test_no_system_param_without_system_messages(self, provider, client):
        await provider.generate(LLMRequest(messages=[LLMMessage(role="user", content="Hi")]))

        assert "system" not in client.messages.create.call_args.kwargs

    @pytest.mark.asyncio
    async def test_metadata_not_forwarded(self, provider, client):
        await provider.generate(
            LLMRequest(
                messages=[LLMMessage(role="user", content="Hi")],
                metadata={"stage": "synthesis"},
            )
        )

        assert "stage" not in client.messages.create.call_args.kwargs

    @pytest.mark.asyncio
    async def test_max_tokens_stop_reason_maps_to_length(self, provider, client):
        client.messages.create.return_value = _message("partial", stop_reason="max_tokens")

        response = await provider.generate(LLMRequest(messages=[LLMMessage(role="user", content="Hi")]))

        assert response.finish_reason == "length"


class TestEmbeddings:
    @pytest.mark.asyncio
    async def test_embed_returns_vector_and_tokens(self):
        client = MagicMock()
        client.embeddings.create = AsyncMock(
            return_value=SimpleNamespace(
                data=[SimpleNamespace(embedding=[0.1, 0.2, 0.3])],
                usage=SimpleNamespace(total_tokens=7),
            )
        )
        service = OpenAIEmbeddingService(api_key="sk-test-key-1234567890abcdefghij", client=client)

        embedding = await service.embed("donations by city")

        assert embedding.vector == [0.1, 0.2, 0.3]
        assert embedding.tokens_used == 7
        client.embeddings.create.assert_awaited_once_with(
            model="text-embedding-3-small", input="donations by city"
        )

    def test_cosine_similarity(self):
        assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
        assert cosine_similarity([1.0, 0.0], [1.0]) == 0.0
        assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0
