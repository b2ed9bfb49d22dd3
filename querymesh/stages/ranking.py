"""
RankingStage: order discovered sources and choose how to run them.

The plan cache is consulted first; a cached plan is reused only when every
source it names is still among today's candidates.
"""

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from querymesh.llm.structured import validate_payload
from querymesh.models.plan import (
    COMBINATION_APPROACHES,
    MISSING_RANK,
    PRIORITIES,
    PROCESSING_STRATEGIES,
    ExecutionPlan,
    RankedSource,
)
from querymesh.models.query import Query
from querymesh.models.sources import DataSourceCandidate
from querymesh.models.stages import RankingResult
from querymesh.services.cache import PlanCache, plan_cache_key
from querymesh.stages.base import BaseStage

logger = logging.getLogger(__name__)


class RankedEntry(BaseModel):
    id: str
    rank: int = MISSING_RANK
    processing_priority: str = "low"

    @field_validator("rank", mode="before")
    @classmethod
    def default_rank(cls, value: Any) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            return MISSING_RANK

    @field_validator("processing_priority", mode="before")
    @classmethod
    def default_priority(cls, value: Any) -> str:
        priority = str(value or "").lower()
        return priority if priority in PRIORITIES else "low"


class RankingPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ranked_sources: list[RankedEntry] = Field(default_factory=list)
    processing_strategy: str = "single_source"
    combination_approach: str = Field("complementary", alias="source_combination_approach")
    optimization_recommendations: list[str] = Field(default_factory=list)

    @field_validator("processing_strategy", mode="before")
    @classmethod
    def default_strategy(cls, value: Any) -> str:
        strategy = str(value or "").lower()
        if strategy == "multi_source_parallel":
            strategy = "parallel"
        return strategy if strategy in PROCESSING_STRATEGIES else "single_source"

    @field_validator("combination_approach", mode="before")
    @classmethod
    def default_approach(cls, value: Any) -> str:
        approach = str(value or "").lower()
        return approach if approach in COMBINATION_APPROACHES else "complementary"


def build_plan(candidates: list[DataSourceCandidate], payload: RankingPayload | None) -> ExecutionPlan:
    """
    Turn a ranking payload into a plan over the given candidates.

    Candidates the model did not mention keep rank 999, so the plan is always a
    permutation of the candidates sorted by (rank, discovery order).
    """
    payload = payload or RankingPayload()
    entries: dict[str, RankedEntry] = {}
    for entry in payload.ranked_sources:
        entries.setdefault(entry.id, entry)

    ranked = []
    for position, candidate in enumerate(candidates):
        entry = entries.get(candidate.id)
        ranked.append(
            (
                entry.rank if entry else MISSING_RANK,
                position,
                RankedSource(
                    candidate=candidate,
                    rank=entry.rank if entry else MISSING_RANK,
                    priority=entry.processing_priority if entry else "low",
                ),
            )
        )
    ranked.sort(key=lambda item: (item[0], item[1]))

    return ExecutionPlan(
        ranked_sources=[source for _, _, source in ranked],
        processing_strategy=payload.processing_strategy,
        combination_approach=payload.combination_approach,
        optimization_recommendations=payload.optimization_recommendations,
    )


class RankingStage(BaseStage):
    """Produces the ExecutionPlan for the discovered candidates."""

    def __init__(self, plan_cache: PlanCache | None = None, **kwargs):
        super().__init__(name="ranking", **kwargs)
        self.plan_cache = plan_cache

    async def execute(self, query: Query, candidates: list[DataSourceCandidate]) -> RankingResult:
        candidate_ids = [candidate.id for candidate in candidates]
        cache_key = plan_cache_key(query.text, candidate_ids)

        cached = self._cached_plan(cache_key, candidates)
        if cached is not None:
            logger.info("Reusing cached execution plan", extra={"stage": self.name})
            return RankingResult(plan=cached, cache_hit=True)

        payload, tokens = await self._generate_json(
            "agents/ranking.md",
            temperature=0.1,
            max_tokens=800,
            query=query.text,
            sources=[
                {
                    "id": candidate.id,
                    "name": candidate.name,
                    "kind": candidate.kind,
                    "relevance": candidate.relevance_score,
                    "confidence": candidate.confidence_score,
                }
                for candidate in candidates
            ],
        )
        plan = build_plan(candidates, validate_payload(RankingPayload, payload, self.name))

        if self.plan_cache is not None:
            self.plan_cache.put(cache_key, plan)

        logger.info(
            f"Planned {plan.processing_strategy} execution over {len(plan.ranked_sources)} sources",
            extra={"stage": self.name, "source_ids": plan.source_ids},
        )
        return RankingResult(plan=plan, tokens_used=tokens)

    def _cached_plan(
        self, key: str, candidates: list[DataSourceCandidate]
    ) -> ExecutionPlan | None:
        if self.plan_cache is None:
            return None
        plan = self.plan_cache.get(key)
        if plan is None:
            return None

        current = {candidate.id: candidate for candidate in candidates}
        if not all(source_id in current for source_id in plan.source_ids):
            return None

        # Scores come from this request, not the cached one.
        for ranked in plan.ranked_sources:
            ranked.candidate = current[ranked.candidate.id]
        return plan
