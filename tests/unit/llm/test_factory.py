"""
Tests for LLM Provider Factory.

Tests provider creation, configuration, and per-role overrides.
"""

import pytest

from querymesh.config import LLMSettings
from querymesh.llm.anthropic import AnthropicProvider
from querymesh.llm.embeddings import OpenAIEmbeddingService
from querymesh.llm.factory import LLMProviderFactory
from querymesh.llm.openai import OpenAIProvider


@pytest.fixture
def mock_config():
    """Mock LLM configuration with both providers configured."""
    return LLMSettings(
        default_provider="openai",
        sql_provider="anthropic",
        openai_api_key="sk-test-openai-key-1234567890",
        openai_model="gpt-4o",
        openai_model_mini="gpt-4o-mini",
        anthropic_api_key="sk-ant-REDACTED",
        anthropic_model="claude-3-5-sonnet-20241022",
        anthropic_model_mini="claude-3-5-haiku-20241022",
        temperature=0.0,
        max_tokens=2000,
        timeout=30,
    )


class TestProviderRegistry:
    def test_provider_classes(self):
        assert LLMProviderFactory.PROVIDERS == {
            "openai": OpenAIProvider,
            "anthropic": AnthropicProvider,
        }


class TestCreateProvider:
    def test_create_openai_main_model(self, mock_config):
        provider = LLMProviderFactory.create_provider("openai", mock_config)
        assert isinstance(provider, OpenAIProvider)
        assert provider.model == "gpt-4o"

    def test_create_openai_mini_model(self, mock_config):
        provider = LLMProviderFactory.create_provider("openai", mock_config, model_type="mini")
        assert provider.model == "gpt-4o-mini"

    def test_create_anthropic(self, mock_config):
        provider = LLMProviderFactory.create_provider("anthropic", mock_config)
        assert isinstance(provider, AnthropicProvider)
        assert provider.model == "claude-3-5-sonnet-20241022"

    def test_unknown_provider_raises(self, mock_config):
        with pytest.raises(ValueError, match="Unknown provider type"):
            LLMProviderFactory.create_provider("google", mock_config)

    def test_missing_key_raises(self):
        config = LLMSettings(
            default_provider="openai",
            openai_api_key="sk-test-openai-key-1234567890",
            anthropic_api_key=None,
        )
        with pytest.raises(ValueError, match="Anthropic API key is required"):
            LLMProviderFactory.create_provider("anthropic", config)


class TestStageProviders:
    def test_default_provider(self, mock_config):
        provider = LLMProviderFactory.create_default_provider(mock_config)
        assert isinstance(provider, OpenAIProvider)

    def test_sql_override(self, mock_config):
        provider = LLMProviderFactory.create_stage_provider("sql", mock_config)
        assert isinstance(provider, AnthropicProvider)

    def test_role_without_override_uses_default(self, mock_config):
        provider = LLMProviderFactory.create_stage_provider("synthesis", mock_config)
        assert isinstance(provider, OpenAIProvider)

    def test_gate_provider_uses_mini_model(self, mock_config):
        provider = LLMProviderFactory.create_gate_provider(mock_config)
        assert isinstance(provider, OpenAIProvider)
        assert provider.model == "gpt-4o-mini"


class TestEmbeddingService:
    def test_creates_openai_embeddings(self, mock_config):
        service = LLMProviderFactory.create_embedding_service(mock_config)
        assert isinstance(service, OpenAIEmbeddingService)
        assert service.model == "text-embedding-3-small"

    def test_requires_openai_key(self, monkeypatch):
        monkeypatch.delenv("LLM_OPENAI_API_KEY")
        config = LLMSettings(
            default_provider="anthropic",
            anthropic_api_key="sk-ant-REDACTED",
        )
        with pytest.raises(ValueError, match="OpenAI API key is required for embeddings"):
            LLMProviderFactory.create_embedding_service(config)
