"""
ChartGenerationStage: turn a visualization decision into a chart descriptor.

No LLM call. Encodings are inferred from the first successful result's rows.
Rendering is left to the caller.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from querymesh.models.query import Query
from querymesh.models.results import SourceExecutionResult
from querymesh.models.stages import VisualizationResult
from querymesh.models.visualization import (
    GEOGRAPHIC_CHART_TYPES,
    ChartEncoding,
    ChartSpec,
    VisualizationDecision,
)
from querymesh.stages.base import BaseStage

logger = logging.getLogger(__name__)

LOCATION_FIELDS = ("country", "state", "city", "region", "lat", "latitude", "lon", "lng", "longitude")
TEMPORAL_HINTS = ("date", "time", "month", "year", "day", "week", "quarter", "period")


def _is_numeric(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _is_temporal(name: str, value: Any) -> bool:
    if isinstance(value, (date, datetime)):
        return True
    lowered = name.lower()
    return any(hint in lowered for hint in TEMPORAL_HINTS)


def infer_encoding(rows: list[dict[str, Any]], chart_type: str) -> ChartEncoding:
    """Pick x, y and location fields from the first row's columns."""
    if not rows:
        return ChartEncoding()
    sample = rows[0]
    columns = list(sample.keys())

    numeric = [name for name in columns if _is_numeric(sample[name])]
    temporal = [name for name in columns if name not in numeric and _is_temporal(name, sample[name])]
    categorical = [name for name in columns if name not in numeric and name not in temporal]

    x = (temporal or categorical or [None])[0]
    y = numeric[0] if numeric else None
    encoding = ChartEncoding(x=x, y=y)

    if chart_type in ("pie", "donut", "treemap", "funnel"):
        encoding.color = x
        encoding.value = y
    elif chart_type in ("scatter", "bubble") and len(numeric) > 1:
        encoding.x = numeric[0]
        encoding.y = numeric[1]
        if chart_type == "bubble" and len(numeric) > 2:
            encoding.size = numeric[2]

    if chart_type in GEOGRAPHIC_CHART_TYPES:
        location = next((name for name in columns if name.lower() in LOCATION_FIELDS), None)
        encoding.location = location
        encoding.value = y
    return encoding


class ChartGenerationStage(BaseStage):
    """Builds a ChartSpec; failures degrade to no chart."""

    def __init__(self, max_points: int = 200, **kwargs):
        super().__init__(name="chart", **kwargs)
        self.max_points = max_points

    async def execute(
        self,
        query: Query,
        decision: VisualizationDecision,
        results: list[SourceExecutionResult],
    ) -> VisualizationResult:
        if not decision.required:
            return VisualizationResult(decision=decision)

        try:
            spec = self._build_spec(query, decision, results)
        except Exception as e:
            logger.warning(
                "Chart generation failed",
                extra={"stage": self.name, "error_type": type(e).__name__},
            )
            return VisualizationResult(
                decision=VisualizationDecision(
                    required=False,
                    chart_type=decision.chart_type,
                    confidence=decision.confidence,
                    reasoning=f"Chart generation failed: {type(e).__name__}",
                )
            )
        return VisualizationResult(decision=decision, spec=spec)

    def _build_spec(
        self,
        query: Query,
        decision: VisualizationDecision,
        results: list[SourceExecutionResult],
    ) -> ChartSpec:
        source = next((result for result in results if result.success and result.data), None)
        if source is None:
            raise ValueError("No rows to chart")
        rows = source.data[: self.max_points]
        chart_type = decision.chart_type
        encoding = infer_encoding(rows, chart_type)

        description = f"{chart_type} chart displaying data for: {query.text}"
        if encoding.x and encoding.y:
            description += f". {encoding.y} by {encoding.x}, {len(rows)} data points"
        if len(source.data) > len(rows):
            description += f" (first {len(rows)} of {len(source.data)})"

        return ChartSpec(
            chart_type=chart_type,
            data=rows,
            encoding=encoding,
            title=query.text,
            alt_text=f"{chart_type} chart for: {query.text}",
            screen_reader_description=description,
        )
