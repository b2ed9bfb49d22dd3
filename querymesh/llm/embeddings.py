"""
Embedding Services

Text-to-vector services used by source discovery. Embeddings are computed
per query and never persisted.
"""

import logging
from abc import ABC, abstractmethod

import openai
from openai import AsyncOpenAI

from querymesh.llm.models import Embedding

logger = logging.getLogger(__name__)


class EmbeddingError(Exception):
    """Raised when an embedding request fails."""

    pass


class EmbeddingService(ABC):
    """Interface for services turning text into an embedding vector."""

    @abstractmethod
    async def embed(self, text: str) -> Embedding:
        """
        Embed a single text.

        Raises:
            EmbeddingError: If the provider call fails
        """
        pass  # pragma: no cover - abstract method


class OpenAIEmbeddingService(EmbeddingService):
    """
    Embedding service backed by the OpenAI embeddings endpoint.

    Usage:
        service = OpenAIEmbeddingService(api_key="sk-...")
        embedding = await service.embed("monthly donations by city")
        print(len(embedding.vector), embedding.tokens_used)
    """

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        timeout: int = 30,
        client: AsyncOpenAI | None = None,
    ):
        self.model = model
        self.client = client or AsyncOpenAI(api_key=api_key, timeout=float(timeout))
        logger.info(f"Embedding service initialized with model: {model}", extra={"model": model})

    async def embed(self, text: str) -> Embedding:
        try:
            response = await self.client.embeddings.create(model=self.model, input=text)
        except openai.APIError as e:
            logger.error(f"OpenAI embedding error: {e}")
            raise EmbeddingError(f"Embedding failed: {e}") from e

        usage = getattr(response, "usage", None)
        return Embedding(
            vector=list(response.data[0].embedding),
            tokens_used=getattr(usage, "total_tokens", 0) or 0,
            model=self.model,
        )


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Compute cosine similarity between two vectors (0.0 on length mismatch)."""
    if not a or not b or len(a) != len(b):
        return 0.0

    dot_product = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = sum(x * x for x in a) ** 0.5
    norm_b = sum(x * x for x in b) ** 0.5

    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    return dot_product / (norm_a * norm_b)
