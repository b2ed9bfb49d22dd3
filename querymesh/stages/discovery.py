"""
SourceDiscoveryStage: find the workspace sources that can answer a question.

Sources are first ordered by embedding similarity between the question and
each source's summary, then filtered by one LLM call. The final relevance is
the mean of the two scores.
"""

import asyncio
import logging

from pydantic import BaseModel, Field, field_validator

from querymesh.llm.embeddings import EmbeddingService, cosine_similarity
from querymesh.llm.models import Embedding
from querymesh.llm.structured import validate_payload
from querymesh.models.errors import NoSourcesAvailable
from querymesh.models.query import Query
from querymesh.models.sources import DataSourceCandidate, RegisteredSource
from querymesh.models.stages import DiscoveryResult
from querymesh.services.registry import SourceRegistry
from querymesh.stages.base import BaseStage
from querymesh.utils.scores import clamp_score

logger = logging.getLogger(__name__)

FAILED_EMBEDDING_SCORE = 0.1


class FilteredSource(BaseModel):
    id: str
    relevance_score: float = 0.5
    reasoning: str = ""

    @field_validator("relevance_score", mode="before")
    @classmethod
    def clamp(cls, value):
        return clamp_score(value, default=0.5)


class SourceFilterPayload(BaseModel):
    filtered_sources: list[FilteredSource] = Field(default_factory=list)
    filter_criteria: list[str] = Field(default_factory=list)
    confidence_score: float = 0.5

    @field_validator("confidence_score", mode="before")
    @classmethod
    def clamp(cls, value):
        return clamp_score(value, default=0.5)


class SourceDiscoveryStage(BaseStage):
    """
    Embedding ranking plus LLM filtering of registered sources.

    Args:
        registry: Where the workspace's sources are listed
        embedder: Embedding service for the question and source summaries
        min_relevance: Combined scores at or below this are dropped
        max_sources: Upper bound on candidates handed to ranking
    """

    def __init__(
        self,
        registry: SourceRegistry,
        embedder: EmbeddingService,
        min_relevance: float = 0.3,
        max_sources: int = 10,
        **kwargs,
    ):
        super().__init__(name="discovery", **kwargs)
        self.registry = registry
        self.embedder = embedder
        self.min_relevance = min_relevance
        self.max_sources = max_sources

    async def execute(self, query: Query) -> DiscoveryResult:
        registered = await self.registry.list_sources(query.workspace_id)
        if not registered:
            raise NoSourcesAvailable(
                self.name,
                "No data sources are connected to this workspace",
                context={"workspace_id": query.workspace_id},
            )

        ready = [source for source in registered if source.is_ready]
        if not ready:
            raise NoSourcesAvailable(
                self.name,
                "No data sources are ready for querying",
                context={"workspace_id": query.workspace_id, "registered": len(registered)},
            )

        ranked, embed_tokens = await self._rank_by_similarity(query.text, ready)

        payload, llm_tokens = await self._generate_json(
            "agents/source_filter.md",
            temperature=0.1,
            max_tokens=1000,
            query=query.text,
            sources=[
                {
                    "id": candidate.id,
                    "name": candidate.name,
                    "kind": candidate.kind,
                    "similarity": candidate.relevance_score,
                    "summary": candidate.ai_summary.description if candidate.ai_summary else "",
                }
                for candidate in ranked
            ],
        )
        parsed = validate_payload(SourceFilterPayload, payload, self.name)

        if parsed is None:
            logger.warning(
                "Source filter unavailable, keeping similarity ranking",
                extra={"stage": self.name, "sources": len(ranked)},
            )
            candidates = ranked[: self.max_sources]
            filter_criteria = ["Fallback analysis"]
            confidence = 0.5
        else:
            candidates = self._apply_filter(ranked, parsed)
            filter_criteria = parsed.filter_criteria
            confidence = parsed.confidence_score

        if not candidates:
            raise NoSourcesAvailable(
                self.name,
                "No data sources are relevant to this question",
                context={"workspace_id": query.workspace_id, "evaluated": len(ranked)},
            )

        logger.info(
            f"Discovered {len(candidates)} of {len(ready)} sources",
            extra={"stage": self.name, "source_ids": [c.id for c in candidates]},
        )
        return DiscoveryResult(
            candidates=candidates,
            filter_criteria=filter_criteria,
            confidence_score=confidence,
            total_sources=len(ready),
            tokens_used=embed_tokens + llm_tokens,
        )

    async def _rank_by_similarity(
        self, text: str, sources: list[RegisteredSource]
    ) -> tuple[list[DataSourceCandidate], int]:
        """Embed everything concurrently and sort by similarity, ties in registry order."""
        query_embedding, *source_embeddings = await asyncio.gather(
            self._safe_embed(text, "query"),
            *(self._safe_embed(source.summary_text(), source.id) for source in sources),
        )

        tokens = sum(e.tokens_used for e in [query_embedding, *source_embeddings] if e)
        candidates = []
        for source, embedding in zip(sources, source_embeddings):
            if query_embedding is None or embedding is None:
                similarity = FAILED_EMBEDDING_SCORE
            else:
                similarity = clamp_score(cosine_similarity(query_embedding.vector, embedding.vector))
            candidate = DataSourceCandidate.from_registered(source)
            candidate.embedding = embedding.vector if embedding else []
            candidate.relevance_score = similarity
            candidate.confidence_score = similarity
            candidates.append(candidate)

        candidates.sort(key=lambda c: -c.relevance_score)
        return candidates, tokens

    async def _safe_embed(self, text: str, label: str) -> Embedding | None:
        try:
            return await self.embedder.embed(text)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(
                f"Embedding failed for {label}",
                extra={"stage": self.name, "error_type": type(e).__name__},
            )
            return None

    def _apply_filter(
        self, ranked: list[DataSourceCandidate], parsed: SourceFilterPayload
    ) -> list[DataSourceCandidate]:
        by_id = {candidate.id: (position, candidate) for position, candidate in enumerate(ranked)}
        seen: set[str] = set()
        kept: list[tuple[float, int, DataSourceCandidate]] = []

        for item in parsed.filtered_sources:
            if item.id not in by_id:
                logger.debug(f"Ignoring unknown source id from filter: {item.id}")
                continue
            if item.id in seen:
                continue
            seen.add(item.id)

            position, candidate = by_id[item.id]
            score = (candidate.relevance_score + item.relevance_score) / 2
            if score <= self.min_relevance:
                continue
            kept.append(
                (
                    score,
                    position,
                    candidate.model_copy(
                        update={
                            "relevance_score": score,
                            "confidence_score": item.relevance_score,
                            "reasoning": item.reasoning or None,
                        }
                    ),
                )
            )

        kept.sort(key=lambda entry: (-entry[0], entry[1]))
        return [candidate for _, _, candidate in kept[: self.max_sources]]
