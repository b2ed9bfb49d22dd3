"""
LLM Provider Module

Completion and embedding abstractions used by every pipeline stage.

Usage:
    from querymesh.llm import LLMProviderFactory, LLMRequest, LLMMessage
    from querymesh.config import get_settings

    config = get_settings()
    provider = LLMProviderFactory.create_default_provider(config.llm)

    response = await provider.generate(
        LLMRequest(messages=[LLMMessage(role="user", content="Hello!")], json_mode=True)
    )
"""

from querymesh.llm.anthropic import AnthropicProvider
from querymesh.llm.base import BaseLLMProvider
from querymesh.llm.embeddings import (
    EmbeddingError,
    EmbeddingService,
    OpenAIEmbeddingService,
    cosine_similarity,
)
from querymesh.llm.factory import LLMProviderFactory
from querymesh.llm.models import Embedding, LLMMessage, LLMRequest, LLMResponse, LLMUsage
from querymesh.llm.openai import OpenAIProvider
from querymesh.llm.structured import complete_json, validate_payload

__all__ = [
    "BaseLLMProvider",
    "EmbeddingService",
    "LLMMessage",
    "LLMRequest",
    "LLMResponse",
    "LLMUsage",
    "Embedding",
    "EmbeddingError",
    "cosine_similarity",
    "LLMProviderFactory",
    "OpenAIProvider",
    "AnthropicProvider",
    "OpenAIEmbeddingService",
    "complete_json",
    "validate_payload",
]
