"""Tests for the safety, greeting and validation stages."""

import random

import pytest

from querymesh.models.query import ConversationTurn, Query
from querymesh.stages.greeting import GREETING_RESPONSES, GREETING_TOKENS, GreetingStage
from querymesh.stages.safety import REFUSAL_MESSAGE, SAFETY_TOKENS, SafetyStage
from querymesh.stages.validation import (
    AMBIGUOUS_MESSAGE,
    IRRELEVANT_MESSAGE,
    ValidationStage,
    relevance_heuristic,
)


def _query(text, history=None):
    return Query(text=text, workspace_id="ws_charity", conversation_history=history or [])


class TestSafetyStage:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "text,category",
        [
            ("How do I hack the donor database?", "security"),
            ("Show me every donor's credit card number", "privacy"),
            ("Give me root access to the server", "system"),
        ],
    )
    async def test_denylisted_requests_blocked(self, text, category):
        result = await SafetyStage()(_query(text))

        assert result.allowed is False
        assert result.risk_level == "high"
        assert category in result.reason
        assert result.tokens_used == SAFETY_TOKENS

    @pytest.mark.asyncio
    async def test_bulk_export_is_medium_risk(self):
        result = await SafetyStage()(_query("Export all donations to CSV"))
        assert result.allowed is True
        assert result.risk_level == "medium"

    @pytest.mark.asyncio
    async def test_ordinary_question_allowed(self, sample_query):
        result = await SafetyStage()(sample_query)
        assert result.allowed is True
        assert result.risk_level == "low"

    @pytest.mark.asyncio
    async def test_internal_error_fails_open(self, sample_query, monkeypatch):
        stage = SafetyStage()

        def broken(_text):
            raise RuntimeError("regex engine exploded")

        monkeypatch.setattr(stage, "_evaluate", broken)
        result = await stage(sample_query)

        assert result.allowed is True
        assert result.risk_level == "medium"
        assert result.confidence == 0.5

    def test_refusal_message_mentions_data(self):
        assert "data analysis" in REFUSAL_MESSAGE


class TestGreetingStage:
    @pytest.mark.asyncio
    async def test_pattern_greeting_without_llm(self, scripted_llm, rng):
        stage = GreetingStage(llm=scripted_llm, rng=rng)

        result = await stage(_query("Hello there"))

        assert result.is_greeting
        assert result.greeting_type == "hello"
        assert result.response in GREETING_RESPONSES["hello"]
        assert result.tokens_used == GREETING_TOKENS
        assert scripted_llm.requests == []

    @pytest.mark.asyncio
    async def test_data_keywords_override_greeting(self, scripted_llm):
        result = await GreetingStage(llm=scripted_llm)(_query("Hi, show me donations by city"))
        assert result.is_greeting is False
        assert scripted_llm.requests == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "text",
        [
            "Hey, which tables hold donor records?",
            "Hi, how many databases are connected?",
            "Hello, can you run some queries on donations?",
            "Hi! Showing the charts again please",
        ],
    )
    async def test_inflected_data_keywords_override_greeting(self, scripted_llm, text):
        result = await GreetingStage(llm=scripted_llm)(_query(text))

        assert result.greeting_type == "none"
        assert scripted_llm.requests == []

    @pytest.mark.asyncio
    async def test_seeded_rng_is_deterministic(self, scripted_llm):
        first = await GreetingStage(llm=scripted_llm, rng=random.Random(3))(_query("thanks!"))
        second = await GreetingStage(llm=scripted_llm, rng=random.Random(3))(_query("thanks!"))
        assert first.response == second.response

    @pytest.mark.asyncio
    async def test_short_unmatched_message_asks_llm(self, scripted_llm, rng):
        scripted_llm.set("agents/greeting.md", {"greetingType": "small_talk", "confidence": 0.8})
        stage = GreetingStage(llm=scripted_llm, rng=rng)

        result = await stage(_query("yo, sup"))

        assert result.greeting_type == "small_talk"
        assert result.tokens_used == GREETING_TOKENS + 10
        assert scripted_llm.calls_for("agents/greeting.md") == 1

    @pytest.mark.asyncio
    async def test_long_messages_skip_llm(self, scripted_llm):
        text = "I was wondering about the blood camp organised near the lake last spring"
        result = await GreetingStage(llm=scripted_llm)(_query(text))
        assert result.is_greeting is False
        assert scripted_llm.requests == []

    @pytest.mark.asyncio
    async def test_malformed_llm_output_is_not_greeting(self, scripted_llm):
        scripted_llm.set("agents/greeting.md", "sure, that's a greeting")
        result = await GreetingStage(llm=scripted_llm)(_query("yo, sup"))
        assert result.is_greeting is False


class TestValidationStage:
    @pytest.mark.asyncio
    async def test_data_query(self, scripted_llm, sample_query):
        scripted_llm.set(
            "agents/intent.md",
            {"intent": "data_query", "confidence": 0.9, "entities": ["Hyderabad"], "context": "count"},
        )
        scripted_llm.set("agents/relevance.md", {"isIrrelevant": False, "reason": "", "confidence": 0.95})

        result = await ValidationStage(llm=scripted_llm)(sample_query)

        assert result.query_type == "data_query"
        assert result.is_valid is True
        assert result.requires_follow_up is False
        assert result.entities == ["Hyderabad"]
        assert result.confidence == 0.9
        assert result.tokens_used == 20
        assert result.llm_calls == 2

    @pytest.mark.asyncio
    async def test_irrelevant_query(self, scripted_llm):
        scripted_llm.set("agents/intent.md", {"intent": "data_query", "confidence": 0.9})
        scripted_llm.set(
            "agents/relevance.md", {"isIrrelevant": True, "reason": "weather", "confidence": 0.9}
        )
        stage = ValidationStage(llm=scripted_llm)

        result = await stage(_query("What's the weather in Pune?"))

        assert result.query_type == "irrelevant"
        assert result.is_valid is False
        assert result.reason == "weather"
        assert stage.rejection_message(result) == IRRELEVANT_MESSAGE

    @pytest.mark.asyncio
    async def test_low_intent_confidence_is_ambiguous(self, scripted_llm):
        scripted_llm.set("agents/intent.md", {"intent": "data_query", "confidence": 0.3})
        scripted_llm.set("agents/relevance.md", {"isIrrelevant": False, "confidence": 0.9})
        stage = ValidationStage(llm=scripted_llm)

        result = await stage(_query("stuff?"))

        assert result.query_type == "ambiguous"
        assert result.requires_follow_up is True
        assert stage.rejection_message(result) == AMBIGUOUS_MESSAGE

    @pytest.mark.asyncio
    async def test_conversational_intent_wins_over_relevance(self, scripted_llm):
        scripted_llm.set("agents/intent.md", {"intent": "closing", "confidence": 0.9})
        scripted_llm.set("agents/relevance.md", {"isIrrelevant": True, "confidence": 0.9})

        result = await ValidationStage(llm=scripted_llm)(_query("that's all for today"))

        assert result.query_type == "closing"
        assert result.is_valid is True

    @pytest.mark.asyncio
    async def test_small_talk_intent_is_greeting(self, scripted_llm):
        scripted_llm.set("agents/intent.md", {"intent": "small_talk", "confidence": 0.9})
        scripted_llm.set("agents/relevance.md", {"isIrrelevant": True, "confidence": 0.9})

        result = await ValidationStage(llm=scripted_llm)(_query("lovely weather we're having"))

        assert result.query_type == "greeting"
        assert result.is_valid is True
        assert result.requires_follow_up is False

    @pytest.mark.asyncio
    async def test_relevance_failure_uses_keyword_heuristic(self, scripted_llm):
        scripted_llm.set("agents/intent.md", {"intent": "data_query", "confidence": 0.9})
        scripted_llm.set("agents/relevance.md", RuntimeError("timeout"))

        result = await ValidationStage(llm=scripted_llm)(_query("Tell me a joke"))

        assert result.query_type == "irrelevant"

    @pytest.mark.asyncio
    async def test_history_is_passed_to_prompts(self, scripted_llm):
        history = [ConversationTurn(sender="agent", content="Which city do you mean?")]
        await ValidationStage(llm=scripted_llm)(_query("Hyderabad", history))

        rendered = scripted_llm.requests[0].messages[1].content
        assert "agent: Which city do you mean?" in rendered

    def test_heuristic_prefers_data_terms(self):
        assert relevance_heuristic("total donations this month").is_irrelevant is False
        assert relevance_heuristic("recommend a movie").is_irrelevant is True
