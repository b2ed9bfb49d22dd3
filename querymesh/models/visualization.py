"""Visualization decision and chart descriptor models."""

from typing import Any

from pydantic import BaseModel, Field, field_validator

CHART_TYPES: tuple[str, ...] = (
    "bar",
    "line",
    "pie",
    "scatter",
    "heatmap",
    "table",
    "area",
    "donut",
    "treemap",
    "radar",
    "bubble",
    "funnel",
    "gauge",
    "waterfall",
    "choropleth",
    "bubble_map",
    "heat_map",
    "symbol_map",
    "flow_map",
)

GEOGRAPHIC_CHART_TYPES: frozenset[str] = frozenset(
    {"choropleth", "bubble_map", "heat_map", "symbol_map", "flow_map"}
)


class VisualizationDecision(BaseModel):
    """Whether a chart helps, and which kind."""

    required: bool = False
    chart_type: str = "table"
    confidence: float = 0.0
    reasoning: str = ""

    @field_validator("chart_type", mode="before")
    @classmethod
    def normalize_chart_type(cls, value: Any) -> str:
        chart_type = str(value or "").strip().lower()
        return chart_type if chart_type in CHART_TYPES else "table"

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value: Any) -> float:
        try:
            return min(1.0, max(0.0, float(value)))
        except (TypeError, ValueError):
            return 0.0


class ChartEncoding(BaseModel):
    """Field bindings for a chart, renderer-agnostic."""

    x: str | None = None
    y: str | None = None
    color: str | None = None
    size: str | None = None
    location: str | None = None
    value: str | None = None


class ChartSpec(BaseModel):
    """Structured chart descriptor: data, encoding and accessibility text."""

    chart_type: str
    data: list[dict[str, Any]] = Field(default_factory=list)
    encoding: ChartEncoding = Field(default_factory=ChartEncoding)
    title: str = ""
    alt_text: str = ""
    screen_reader_description: str = ""
