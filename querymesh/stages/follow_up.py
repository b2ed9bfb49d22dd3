"""
FollowUpStage: suggest what to ask next.
"""

import logging
from typing import Any

from pydantic import BaseModel, Field, field_validator

from querymesh.llm.structured import validate_payload
from querymesh.models.answer import SynthesizedAnswer
from querymesh.models.query import Query
from querymesh.models.stages import FollowUpResult
from querymesh.stages.base import BaseStage
from querymesh.utils.scores import clamp_score

logger = logging.getLogger(__name__)

HISTORY_TURNS = 4
RESPONSE_EXCERPT_CHARS = 500


class FollowUpPayload(BaseModel):
    follow_up_questions: list[str] = Field(default_factory=list)
    contextual_suggestions: list[str] = Field(default_factory=list)
    conversation_continuation: bool = False
    confidence: float = 0.5

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp(cls, value: Any) -> float:
        return clamp_score(value, default=0.5)


def merge_questions(*groups: list[str], limit: int = 3) -> list[str]:
    """Concatenate question lists, dropping blanks and case-insensitive repeats."""
    merged: list[str] = []
    seen: set[str] = set()
    for group in groups:
        for question in group:
            text = question.strip()
            key = text.lower()
            if not text or key in seen:
                continue
            seen.add(key)
            merged.append(text)
    return merged[:limit]


class FollowUpStage(BaseStage):
    """Merges synthesis questions with freshly generated ones."""

    def __init__(self, max_questions: int = 3, **kwargs):
        super().__init__(name="follow_up", **kwargs)
        self.max_questions = max_questions

    async def execute(
        self,
        query: Query,
        answer: SynthesizedAnswer,
        data_sources_used: list[str],
    ) -> FollowUpResult:
        payload, tokens = await self._generate_json(
            "agents/follow_up.md",
            temperature=0.7,
            max_tokens=300,
            query=query.text,
            history=query.format_history(HISTORY_TURNS),
            response_excerpt=answer.content[:RESPONSE_EXCERPT_CHARS],
            sources_used=data_sources_used,
            insights=answer.insights,
            evidence=answer.supporting_evidence[:3],
        )
        parsed = validate_payload(FollowUpPayload, payload, self.name) or FollowUpPayload(confidence=0.0)

        questions = merge_questions(
            answer.follow_up_questions, parsed.follow_up_questions, limit=self.max_questions
        )
        return FollowUpResult(
            follow_up_questions=questions,
            contextual_suggestions=parsed.contextual_suggestions,
            conversation_continuation=parsed.conversation_continuation,
            confidence=parsed.confidence,
            metadata={
                "from_synthesis": len(answer.follow_up_questions),
                "generated": len(parsed.follow_up_questions),
            },
            tokens_used=tokens,
        )
