"""Tests for JSON completions and stage schema validation."""

import asyncio

import pytest
from pydantic import BaseModel

from querymesh.llm.models import LLMMessage
from querymesh.llm.structured import complete_json, validate_payload
from querymesh.models.errors import LLMCallFailed
from tests.fakes import ScriptedLLM

MESSAGES = [LLMMessage(role="user", content="classify this")]


class _Schema(BaseModel):
    label: str
    score: float = 0.5


class TestCompleteJson:
    @pytest.mark.asyncio
    async def test_returns_payload_and_tokens(self):
        llm = ScriptedLLM({"agents/intent.md": {"label": "data"}}, tokens_per_call=42)

        payload, tokens = await complete_json(
            llm, MESSAGES, stage="validation", temperature=0.1, prompt="agents/intent.md"
        )

        assert payload == {"label": "data"}
        assert tokens == 42
        request = llm.requests[0]
        assert request.json_mode is True
        assert request.metadata == {"stage": "validation", "prompt": "agents/intent.md"}

    @pytest.mark.asyncio
    async def test_fenced_json_is_recovered(self):
        llm = ScriptedLLM({"p": 'Sure:\n```json\n{"label": "x"}\n```'})

        payload, _ = await complete_json(llm, MESSAGES, stage="s", temperature=0.0, prompt="p")

        assert payload == {"label": "x"}

    @pytest.mark.asyncio
    async def test_non_json_output_gives_none_but_keeps_tokens(self):
        llm = ScriptedLLM({"p": "I cannot answer that"}, tokens_per_call=9)

        payload, tokens = await complete_json(llm, MESSAGES, stage="s", temperature=0.0, prompt="p")

        assert payload is None
        assert tokens == 9

    @pytest.mark.asyncio
    async def test_provider_error_raises_llm_call_failed(self):
        llm = ScriptedLLM({"p": RuntimeError("503 from upstream")})

        with pytest.raises(LLMCallFailed) as exc_info:
            await complete_json(llm, MESSAGES, stage="ranking", temperature=0.0, prompt="p")

        assert exc_info.value.stage == "ranking"
        assert exc_info.value.recoverable is True
        assert exc_info.value.context["error_type"] == "RuntimeError"

    @pytest.mark.asyncio
    async def test_timeout_raises_llm_call_failed(self):
        async def slow(_request):
            await asyncio.sleep(1)

        llm = ScriptedLLM()
        llm.generate = slow

        with pytest.raises(LLMCallFailed, match="timed out"):
            await complete_json(llm, MESSAGES, stage="s", temperature=0.0, timeout=0.01)


class TestValidatePayload:
    def test_valid_payload(self):
        parsed = validate_payload(_Schema, {"label": "a", "score": 0.9}, "stage")
        assert parsed == _Schema(label="a", score=0.9)

    def test_missing_field_gives_none(self):
        assert validate_payload(_Schema, {"score": 0.9}, "stage") is None

    def test_none_payload_gives_none(self):
        assert validate_payload(_Schema, None, "stage") is None
