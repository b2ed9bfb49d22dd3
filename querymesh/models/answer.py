"""Synthesized answer models."""

from pydantic import BaseModel, Field


class SourceAttribution(BaseModel):
    """How much one executed source contributed to the answer."""

    source_id: str
    contribution: str = ""
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class SynthesizedAnswer(BaseModel):
    """Combined answer across every executed source."""

    content: str
    attributions: list[SourceAttribution] = Field(default_factory=list)
    insights: list[str] = Field(default_factory=list)
    supporting_evidence: list[str] = Field(default_factory=list)
    conflicts: list[str] = Field(default_factory=list)
    gaps: list[str] = Field(default_factory=list)
    clarification_needed: bool = False
    uncertainty_reasons: list[str] = Field(default_factory=list)
    follow_up_questions: list[str] = Field(default_factory=list)
    is_clarification_reply: bool = False
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    failed: bool = False
