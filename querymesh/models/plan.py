"""Execution plan models."""

from typing import Literal

from pydantic import BaseModel, Field

from querymesh.models.sources import DataSourceCandidate

ProcessingStrategy = Literal["single_source", "parallel", "sequential"]
CombinationApproach = Literal["complementary", "verification", "comprehensive"]
Priority = Literal["high", "medium", "low"]

PROCESSING_STRATEGIES: tuple[str, ...] = ("single_source", "parallel", "sequential")
COMBINATION_APPROACHES: tuple[str, ...] = ("complementary", "verification", "comprehensive")
PRIORITIES: tuple[str, ...] = ("high", "medium", "low")

MISSING_RANK = 999


class RankedSource(BaseModel):
    """A filtered candidate with its execution rank and priority."""

    candidate: DataSourceCandidate
    rank: int = MISSING_RANK
    priority: Priority = "low"


class ExecutionPlan(BaseModel):
    """
    Ordered sources plus the strategy used to execute them.

    ``ranked_sources`` is always a subset of the filtered candidates and is
    kept in rank order.
    """

    ranked_sources: list[RankedSource] = Field(default_factory=list)
    processing_strategy: ProcessingStrategy = "single_source"
    combination_approach: CombinationApproach = "complementary"
    optimization_recommendations: list[str] = Field(default_factory=list)

    @property
    def source_ids(self) -> list[str]:
        return [ranked.candidate.id for ranked in self.ranked_sources]

    def execution_targets(self) -> list[RankedSource]:
        """Sources that will actually be executed, in rank order."""
        if self.processing_strategy == "single_source":
            return self.ranked_sources[:1]
        return list(self.ranked_sources)
