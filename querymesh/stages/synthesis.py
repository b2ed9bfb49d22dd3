"""
SynthesisStage: combine per-source results into one attributed answer.

Also recognizes when the user is replying to a clarification request the
assistant made earlier, so the reply is treated as a continuation of the
previous question rather than a fresh one.
"""

import json
import logging
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from querymesh.llm.structured import validate_payload
from querymesh.models.answer import SourceAttribution, SynthesizedAnswer
from querymesh.models.query import Query
from querymesh.models.results import SourceExecutionResult
from querymesh.models.stages import SynthesisResult
from querymesh.stages.base import BaseStage
from querymesh.utils.pattern_matcher import QueryPatternMatcher
from querymesh.utils.scores import clamp_score

logger = logging.getLogger(__name__)

CLARIFICATION_WINDOW = 6
HISTORY_TURNS = 4
PROMPT_ROW_LIMIT = 50
FALLBACK_CONFIDENCE = 0.4

DEFAULT_CONTENT = (
    "I was unable to generate a comprehensive response from the available data sources."
)

_FAILURE_DESCRIPTIONS = {
    "schema_unavailable": "{name} has no captured schema to query",
    "unsafe_sql": "the query prepared for {name} did not pass safety checks",
    "execution_failed": "{name} could not be queried",
    "cancelled": "{name} did not finish before the request was cancelled",
}


class ClarificationPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_clarification: bool = Field(False, alias="isClarification")
    confidence: float = 0.0
    clarification_type: Literal[
        "parameter_specification", "context_addition", "query_refinement"
    ] | None = Field(None, alias="clarificationType")
    reasoning: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp(cls, value: Any) -> float:
        return clamp_score(value)


class AttributionPayload(BaseModel):
    source_id: str
    contribution: str = ""
    confidence_score: float = 0.5

    @field_validator("confidence_score", mode="before")
    @classmethod
    def clamp(cls, value: Any) -> float:
        return clamp_score(value, default=0.5)


class SynthesisPayload(BaseModel):
    content: str = ""
    primary_insights: list[str] = Field(default_factory=list)
    supporting_evidence: list[str] = Field(default_factory=list)
    conflicting_information: list[str] = Field(default_factory=list)
    gaps_identified: list[str] = Field(default_factory=list)
    source_attributions: list[AttributionPayload] = Field(default_factory=list)
    follow_up_questions: list[str] = Field(default_factory=list)
    clarification_needed: bool = False
    uncertainty_reasons: list[str] = Field(default_factory=list)
    confidence_assessment: str = ""
    confidence_score: float = 0.5

    @field_validator("confidence_score", mode="before")
    @classmethod
    def clamp(cls, value: Any) -> float:
        return clamp_score(value, default=0.5)


def describe_failures(results: list[SourceExecutionResult]) -> str:
    """User-facing explanation of failed sources; never includes raw errors."""
    if not results:
        return "No data sources could be queried for this question."
    reasons = [
        _FAILURE_DESCRIPTIONS.get(result.error_kind or "execution_failed", "{name} could not be queried").format(
            name=result.source_name or result.source_id
        )
        for result in results
    ]
    return "I couldn't retrieve data to answer this question: " + "; ".join(reasons) + "."


def summarize_rows(results: list[SourceExecutionResult]) -> SynthesizedAnswer:
    """Row-count summary used when the answer call is unavailable."""
    successes = [result for result in results if result.success]
    lines = [f"Retrieved data from {len(successes)} of {len(results)} sources:"]
    for result in successes:
        lines.append(f"• {result.source_name or result.source_id}: {result.row_count} rows")
    failures = [result for result in results if not result.success]
    if failures:
        lines.append(describe_failures(failures))

    return SynthesizedAnswer(
        content="\n".join(lines),
        attributions=[
            SourceAttribution(
                source_id=result.source_id,
                contribution=f"Returned {result.row_count} rows",
                confidence=result.confidence_score,
            )
            for result in successes
        ],
        gaps=[f"{result.source_name or result.source_id} returned no data" for result in failures],
        uncertainty_reasons=["Answer summarized without model analysis"],
        confidence=FALLBACK_CONFIDENCE,
    )


class SynthesisStage(BaseStage):
    """Builds the SynthesizedAnswer from every executed source."""

    def __init__(self, matcher: QueryPatternMatcher | None = None, **kwargs):
        super().__init__(name="synthesis", **kwargs)
        self.matcher = matcher or QueryPatternMatcher()

    async def execute(
        self,
        query: Query,
        results: list[SourceExecutionResult],
        combination_approach: str = "complementary",
    ) -> SynthesisResult:
        clarification_context, clarification_tokens = await self._clarification_context(query)

        if not any(result.success for result in results):
            logger.warning(
                "Every source failed, skipping answer generation",
                extra={"stage": self.name, "sources": len(results)},
            )
            answer = SynthesizedAnswer(
                content=describe_failures(results),
                clarification_needed=True,
                failed=True,
                gaps=[result.source_name or result.source_id for result in results],
                uncertainty_reasons=["No data source returned results"],
                is_clarification_reply=bool(clarification_context),
                confidence=0.0,
            )
            return SynthesisResult(answer=answer, tokens_used=clarification_tokens)

        payload, tokens = await self._generate_json(
            "agents/synthesis.md",
            temperature=0.1,
            max_tokens=2000,
            query=query.text,
            history=query.format_history(HISTORY_TURNS),
            clarification_context=clarification_context,
            combination_approach=combination_approach,
            results_json=self._results_json(results),
        )
        parsed = validate_payload(SynthesisPayload, payload, self.name)

        if parsed is None:
            answer = summarize_rows(results)
        else:
            answer = self._to_answer(parsed, {result.source_id for result in results})
        answer.is_clarification_reply = bool(clarification_context)

        return SynthesisResult(answer=answer, tokens_used=clarification_tokens + tokens)

    async def _clarification_context(self, query: Query) -> tuple[str, int]:
        """Return context text when the query answers an earlier clarification request."""
        last_agent = next(
            (
                turn
                for turn in reversed(query.recent_turns(CLARIFICATION_WINDOW))
                if turn.sender == "agent"
            ),
            None,
        )
        if last_agent is None or not self.matcher.is_clarification_prompt(last_agent.content):
            return "", 0

        payload, tokens = await self._generate_json(
            "agents/clarification.md",
            temperature=0.1,
            max_tokens=200,
            query=query.text,
            last_agent_message=last_agent.content,
            history=query.format_history(CLARIFICATION_WINDOW),
        )
        parsed = validate_payload(ClarificationPayload, payload, self.name)
        if parsed is None or not parsed.is_clarification:
            return "", tokens

        logger.info(
            "Query is a reply to a clarification request",
            extra={"stage": self.name, "clarification_type": parsed.clarification_type},
        )
        context = f"Assistant asked: {last_agent.content}\nUser replied: {query.text}"
        if parsed.clarification_type:
            context += f"\nReply type: {parsed.clarification_type}"
        return context, tokens

    @staticmethod
    def _results_json(results: list[SourceExecutionResult]) -> str:
        entries = []
        for result in results:
            entry: dict[str, Any] = {
                "source_id": result.source_id,
                "source_name": result.source_name,
                "success": result.success,
                "row_count": result.row_count,
                "rows": result.data[:PROMPT_ROW_LIMIT],
            }
            if result.result_type == "database":
                entry["query_executed"] = result.query_executed
            else:
                entry["endpoint"] = result.endpoint
            if not result.success:
                entry["error_kind"] = result.error_kind
            entries.append(entry)
        return json.dumps(entries, indent=2, default=str)

    def _to_answer(self, parsed: SynthesisPayload, executed_ids: set[str]) -> SynthesizedAnswer:
        attributions = []
        for item in parsed.source_attributions:
            if item.source_id not in executed_ids:
                logger.debug(f"Dropping attribution to unexecuted source {item.source_id}")
                continue
            attributions.append(
                SourceAttribution(
                    source_id=item.source_id,
                    contribution=item.contribution,
                    confidence=item.confidence_score,
                )
            )

        return SynthesizedAnswer(
            content=parsed.content or DEFAULT_CONTENT,
            attributions=attributions,
            insights=parsed.primary_insights,
            supporting_evidence=parsed.supporting_evidence,
            conflicts=parsed.conflicting_information,
            gaps=parsed.gaps_identified,
            clarification_needed=parsed.clarification_needed,
            uncertainty_reasons=parsed.uncertainty_reasons,
            follow_up_questions=parsed.follow_up_questions,
            confidence=parsed.confidence_score,
        )
