"""
Stage Result Models

Typed outputs for every pipeline stage. Each carries the tokens the stage
spent so the orchestrator can post them to the ledger.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field

from querymesh.models.answer import SynthesizedAnswer
from querymesh.models.plan import ExecutionPlan
from querymesh.models.sources import DataSourceCandidate
from querymesh.models.visualization import ChartSpec, VisualizationDecision

RiskLevel = Literal["low", "medium", "high"]
GreetingType = Literal["hello", "goodbye", "thanks", "small_talk", "none"]
IntentType = Literal[
    "greeting", "closing", "continuation", "clarification", "small_talk", "data_query"
]
QueryType = Literal[
    "greeting",
    "closing",
    "continuation",
    "clarification",
    "irrelevant",
    "ambiguous",
    "data_query",
]


class StageResult(BaseModel):
    """Fields shared by every stage output."""

    tokens_used: int = 0
    llm_calls: int = 0


class SafetyResult(StageResult):
    allowed: bool = True
    risk_level: RiskLevel = "low"
    reason: str = ""
    confidence: float = 0.9


class GreetingResult(StageResult):
    greeting_type: GreetingType = "none"
    confidence: float = 0.0
    response: str | None = None

    @property
    def is_greeting(self) -> bool:
        return self.greeting_type != "none"


class ValidationResult(StageResult):
    query_type: QueryType = "data_query"
    is_valid: bool = True
    requires_follow_up: bool = False
    confidence: float = 0.5
    reason: str = ""
    entities: list[str] = Field(default_factory=list)
    context: str = ""


class SchemaAnswerResult(StageResult):
    handled: bool = False
    content: str = ""
    source_id: str | None = None
    confidence: float = 0.0
    follow_up_questions: list[str] = Field(default_factory=list)


class DiscoveryResult(StageResult):
    candidates: list[DataSourceCandidate] = Field(default_factory=list)
    filter_criteria: list[str] = Field(default_factory=list)
    confidence_score: float = 0.5
    total_sources: int = 0


class RankingResult(StageResult):
    plan: ExecutionPlan
    cache_hit: bool = False


class SynthesisResult(StageResult):
    answer: SynthesizedAnswer


class VisualizationResult(StageResult):
    decision: VisualizationDecision = Field(default_factory=VisualizationDecision)
    spec: ChartSpec | None = None


class FollowUpResult(StageResult):
    follow_up_questions: list[str] = Field(default_factory=list)
    contextual_suggestions: list[str] = Field(default_factory=list)
    conversation_continuation: bool = False
    confidence: float = 0.0
    metadata: dict[str, Any] = Field(default_factory=dict)
