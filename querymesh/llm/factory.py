"""
LLM Provider Factory

Builds the providers a pipeline needs from ``LLMSettings``:

- the default provider (synthesis, ranking, follow-ups, ...)
- the gate provider for safety, greeting and validation, on ``gate_model``
- an optional SQL provider when ``sql_provider`` is set
- the embedding service used by source discovery
"""

import logging
from typing import Literal

from querymesh.config import LLMSettings
from querymesh.llm.anthropic import AnthropicProvider
from querymesh.llm.base import BaseLLMProvider
from querymesh.llm.embeddings import EmbeddingService, OpenAIEmbeddingService
from querymesh.llm.openai import OpenAIProvider

logger = logging.getLogger(__name__)

ModelType = Literal["main", "mini"]

_DISPLAY_NAMES = {"openai": "OpenAI", "anthropic": "Anthropic"}


class LLMProviderFactory:
    """Provider construction keyed by provider name and model tier."""

    PROVIDERS = {
        "openai": OpenAIProvider,
        "anthropic": AnthropicProvider,
    }

    @staticmethod
    def create_provider(
        provider_type: str,
        config: LLMSettings,
        model_type: ModelType = "main",
    ) -> BaseLLMProvider:
        """
        Raises:
            ValueError: If provider type is unknown or its API key is missing
        """
        provider_cls = LLMProviderFactory.PROVIDERS.get(provider_type)
        if provider_cls is None:
            raise ValueError(
                f"Unknown provider type: {provider_type}. "
                f"Available providers: {list(LLMProviderFactory.PROVIDERS)}"
            )

        api_key = getattr(config, f"{provider_type}_api_key")
        if not api_key:
            raise ValueError(f"{_DISPLAY_NAMES[provider_type]} API key is required but not configured")

        suffix = "_mini" if model_type == "mini" else ""
        model = getattr(config, f"{provider_type}_model{suffix}")
        logger.info(
            f"Creating {provider_type} provider with {model}",
            extra={"provider": provider_type, "model": model, "model_type": model_type},
        )
        return provider_cls(
            api_key=api_key,
            model=model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout=config.timeout,
        )

    @staticmethod
    def create_default_provider(
        config: LLMSettings, model_type: ModelType = "main"
    ) -> BaseLLMProvider:
        return LLMProviderFactory.create_provider(config.default_provider, config, model_type)

    @staticmethod
    def create_gate_provider(config: LLMSettings) -> BaseLLMProvider:
        """Provider for the classification gates, on the configured tier."""
        return LLMProviderFactory.create_provider(
            config.default_provider, config, config.gate_model
        )

    @staticmethod
    def create_stage_provider(
        role: str,
        config: LLMSettings,
        model_type: ModelType = "main",
    ) -> BaseLLMProvider:
        """Provider for a role, honouring a ``<role>_provider`` override when configured."""
        provider_type = getattr(config, f"{role}_provider", None) or config.default_provider
        return LLMProviderFactory.create_provider(provider_type, config, model_type)

    @staticmethod
    def create_embedding_service(config: LLMSettings) -> EmbeddingService:
        if not config.openai_api_key:
            raise ValueError("OpenAI API key is required for embeddings but not configured")
        return OpenAIEmbeddingService(
            api_key=config.openai_api_key,
            model=config.embedding_model,
            timeout=config.timeout,
        )
