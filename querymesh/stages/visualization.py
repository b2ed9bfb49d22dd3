"""
VisualizationDecisionStage: decide whether the answer deserves a chart.
"""

import logging
from typing import Any

from pydantic import BaseModel, field_validator

from querymesh.llm.structured import validate_payload
from querymesh.models.query import Query
from querymesh.models.results import SourceExecutionResult
from querymesh.models.stages import VisualizationResult
from querymesh.models.visualization import CHART_TYPES, VisualizationDecision
from querymesh.stages.base import BaseStage
from querymesh.utils.pattern_matcher import QueryPatternMatcher
from querymesh.utils.scores import clamp_score

logger = logging.getLogger(__name__)

NARRATIVE_CHARS = 500


class VisualizationPayload(BaseModel):
    visualization_required: bool = False
    chart_type: str = "table"
    reasoning: str = ""
    confidence_score: float = 0.5

    @field_validator("confidence_score", mode="before")
    @classmethod
    def clamp(cls, value: Any) -> float:
        return clamp_score(value, default=0.5)


def data_summary(results: list[SourceExecutionResult]) -> str:
    """One line per dataset: size, columns and a sample row."""
    lines = []
    for index, result in enumerate(results, start=1):
        columns = list(result.data[0].keys()) if result.data else []
        sample = ", ".join(f"{key}: {value}" for key, value in (result.data[0].items() if result.data else []))
        lines.append(
            f"Dataset {index}: Array with {result.row_count} items, "
            f"columns: {', '.join(columns)}, sample: {{{sample}}}"
        )
    return "\n".join(lines)


class VisualizationDecisionStage(BaseStage):
    """LLM-backed chart decision with a keyword fallback."""

    def __init__(self, matcher: QueryPatternMatcher | None = None, **kwargs):
        super().__init__(name="visualization", **kwargs)
        self.matcher = matcher or QueryPatternMatcher()

    async def execute(
        self,
        query: Query,
        results: list[SourceExecutionResult],
        narrative: str,
    ) -> VisualizationResult:
        with_rows = [result for result in results if result.success and result.data]
        if not with_rows:
            return VisualizationResult(
                decision=VisualizationDecision(
                    required=False,
                    chart_type="table",
                    confidence=0.1,
                    reasoning="No data available for visualization",
                )
            )

        try:
            payload, tokens = await self._generate_json(
                "agents/visualization.md",
                temperature=0.1,
                max_tokens=300,
                raise_on_failure=True,
                query=query.text,
                data_summary=data_summary(with_rows),
                narrative=narrative[:NARRATIVE_CHARS],
                chart_types=CHART_TYPES,
            )
        except Exception as e:
            logger.warning(
                "Visualization analysis failed",
                extra={"stage": self.name, "error_type": type(e).__name__},
            )
            return VisualizationResult(
                decision=VisualizationDecision(
                    required=False,
                    chart_type="table",
                    confidence=0.1,
                    reasoning="Error analyzing visualization requirements with LLM",
                )
            )

        parsed = validate_payload(VisualizationPayload, payload, self.name)
        if parsed is None:
            decision = self._keyword_decision(query.text)
        else:
            decision = VisualizationDecision(
                required=parsed.visualization_required,
                chart_type=parsed.chart_type,
                confidence=parsed.confidence_score,
                reasoning=parsed.reasoning,
            )

        logger.info(
            f"Visualization {'required' if decision.required else 'not required'}",
            extra={"stage": self.name, "chart_type": decision.chart_type},
        )
        return VisualizationResult(decision=decision, tokens_used=tokens)

    def _keyword_decision(self, text: str) -> VisualizationDecision:
        if self.matcher.is_count_request(text):
            return VisualizationDecision(
                required=True,
                chart_type="bar",
                confidence=0.3,
                reasoning="Count question, defaulting to a bar chart",
            )
        if self.matcher.is_comparison(text):
            return VisualizationDecision(
                required=True,
                chart_type="bar",
                confidence=0.3,
                reasoning="Comparison question, defaulting to a bar chart",
            )
        return VisualizationDecision(
            required=False,
            chart_type="table",
            confidence=0.3,
            reasoning="No chart cues in the question",
        )
