"""
ValidationStage: intent and relevance classification.

Two independent LLM analyses run concurrently and are folded into a single
query type by a fixed priority order.
"""

import asyncio
import logging

from pydantic import BaseModel, ConfigDict, Field

from querymesh.llm.structured import validate_payload
from querymesh.models.query import Query
from querymesh.models.stages import IntentType, QueryType, ValidationResult
from querymesh.stages.base import BaseStage

logger = logging.getLogger(__name__)

IRRELEVANT_MESSAGE = (
    "I'm a data analysis assistant focused on helping you understand your business data, "
    "files, and metrics. I can help you with questions about your data trends, insights, "
    "and analysis. Could you please ask me something related to your data or business "
    "information?"
)
AMBIGUOUS_MESSAGE = (
    "I'd be happy to help with your data analysis! Could you please clarify what specific "
    "information you're looking for? For example, you could ask about trends, specific "
    "metrics, or particular data points."
)

DATA_TERMS = (
    "how many", "how much", "what is the count", "what are the numbers", "donations",
    "donors", "fundraising", "charity", "metrics", "statistics", "total", "sum",
    "average", "percentage", "ratio", "trend", "analysis",
)
OFF_TOPIC_TERMS = (
    "weather", "recipe", "joke", "story", "movie", "music", "sports", "politics", "news",
    "gossip", "personal", "relationship", "dating", "health advice", "medical",
    "legal advice", "financial advice",
)

HISTORY_TURNS = 4


class IntentPayload(BaseModel):
    intent: IntentType = "data_query"
    confidence: float = Field(0.5, ge=0.0, le=1.0)
    entities: list[str] = Field(default_factory=list)
    context: str = ""


class RelevancePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_irrelevant: bool = Field(False, alias="isIrrelevant")
    reason: str = ""
    confidence: float = Field(0.5, ge=0.0, le=1.0)


def relevance_heuristic(text: str) -> RelevancePayload:
    """Keyword fallback when the relevance call fails."""
    lowered = text.lower()
    if any(term in lowered for term in DATA_TERMS):
        return RelevancePayload(is_irrelevant=False, reason="Contains data-related terms", confidence=0.8)
    if any(term in lowered for term in OFF_TOPIC_TERMS):
        return RelevancePayload(is_irrelevant=True, reason="Contains off-topic terms", confidence=0.7)
    return RelevancePayload(is_irrelevant=False, reason="No off-topic terms found", confidence=0.5)


def resolve_query_type(intent: IntentPayload, relevance: RelevancePayload) -> QueryType:
    """Fold intent and relevance into one query type by priority."""
    if intent.intent == "small_talk":
        return "greeting"
    if intent.intent in ("greeting", "closing", "continuation", "clarification"):
        return intent.intent
    if relevance.is_irrelevant:
        return "irrelevant"
    if intent.confidence < 0.5:
        return "ambiguous"
    return "data_query"


class ValidationStage(BaseStage):
    """Classifies intent and scope of the question."""

    def __init__(self, **kwargs):
        super().__init__(name="validation", **kwargs)

    async def execute(self, query: Query) -> ValidationResult:
        try:
            return await self._validate(query)
        except Exception as e:
            logger.warning(
                "Validation failed, treating as data query",
                extra={"stage": self.name, "error_type": type(e).__name__},
            )
            return ValidationResult(query_type="data_query", is_valid=True, confidence=0.5)

    async def _validate(self, query: Query) -> ValidationResult:
        history = query.format_history(HISTORY_TURNS)
        (intent_payload, intent_tokens), (relevance_payload, relevance_tokens) = await asyncio.gather(
            self._generate_json(
                "agents/intent.md",
                temperature=0.1,
                max_tokens=200,
                query=query.text,
                history=history,
            ),
            self._generate_json(
                "agents/relevance.md",
                temperature=0.1,
                max_tokens=150,
                query=query.text,
                history=history,
            ),
        )

        intent = validate_payload(IntentPayload, intent_payload, self.name) or IntentPayload()
        relevance = validate_payload(RelevancePayload, relevance_payload, self.name)
        if relevance is None:
            relevance = relevance_heuristic(query.text)

        query_type = resolve_query_type(intent, relevance)
        confidence = min(intent.confidence, relevance.confidence)
        requires_follow_up = query_type in ("ambiguous", "irrelevant") or (
            query_type == "data_query" and intent.confidence < 0.7
        )
        reason = relevance.reason if query_type == "irrelevant" else intent.context

        logger.info(
            f"Query classified as {query_type}",
            extra={"stage": self.name, "query_type": query_type, "confidence": confidence},
        )
        return ValidationResult(
            query_type=query_type,
            is_valid=query_type not in ("irrelevant", "ambiguous"),
            requires_follow_up=requires_follow_up,
            confidence=confidence,
            reason=reason,
            entities=intent.entities,
            context=intent.context,
            tokens_used=intent_tokens + relevance_tokens,
        )

    @staticmethod
    def rejection_message(result: ValidationResult) -> str:
        """Canned user-facing message for an invalid query."""
        if result.query_type == "irrelevant":
            return IRRELEVANT_MESSAGE
        return AMBIGUOUS_MESSAGE
