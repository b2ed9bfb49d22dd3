"""Final response envelope emitted once per request."""

from typing import Any, Literal

from pydantic import BaseModel, Field

from querymesh.models.answer import SourceAttribution
from querymesh.models.visualization import ChartSpec, VisualizationDecision

ProcessingStatus = Literal[
    "completed",
    "blocked_by_guardrails",
    "greeting_response",
    "validation_failed",
    "schema_answer",
    "clarification_needed",
    "failed",
    "cancelled",
]


class Explainability(BaseModel):
    """How the answer was reached and how far to trust it."""

    reasoning_steps: list[str] = Field(default_factory=list)
    confidence_score: float = 0.0
    uncertainty_factors: list[str] = Field(default_factory=list)
    data_quality_score: float = 0.0


class VisualizationPayload(BaseModel):
    decision: VisualizationDecision
    spec: ChartSpec | None = None


class ResponseMetadata(BaseModel):
    processing_status: ProcessingStatus
    agent_id: str | None = None
    workspace_id: str
    data_sources_used: list[str] = Field(default_factory=list)
    confidence_score: float = 0.0
    follow_up_questions: list[str] = Field(default_factory=list)
    source_attributions: list[SourceAttribution] = Field(default_factory=list)
    synthesis: dict[str, Any] = Field(default_factory=dict)


class ResponseEnvelope(BaseModel):
    """Everything the caller receives for one question."""

    content: str
    metadata: ResponseMetadata
    explainability: Explainability = Field(default_factory=Explainability)
    stage_timings_ms: dict[str, float] = Field(default_factory=dict)
    token_breakdown: dict[str, int] = Field(default_factory=dict)
    tokens_used: int = 0
    tokens_rounded: int = 0
    credits_used: int = 0
    processing_time_ms: float = 0.0
    sql_queries: list[str] = Field(default_factory=list)
    visualization: VisualizationPayload | None = None

    @property
    def status(self) -> ProcessingStatus:
        return self.metadata.processing_status
