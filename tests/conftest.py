"""
Pytest configuration and shared fixtures.

This module provides fixtures and configuration used across all tests.
"""

import logging
import random
from typing import Any
from unittest.mock import AsyncMock

import pytest
from cryptography.fernet import Fernet

from querymesh.connectors.base import QueryResult
from querymesh.models.query import Query
from querymesh.models.sources import (
    RegisteredSource,
    SchemaColumn,
    SchemaSnapshot,
    SchemaTable,
    SourceSummary,
)
from querymesh.services.encryption import FernetCredentialCipher
from querymesh.services.registry import InMemorySourceRegistry
from tests.fakes import FakeEmbedder, ScriptedLLM

TEST_CREDENTIALS_KEY = Fernet.generate_key().decode("utf-8")
WORKSPACE_ID = "ws_charity"

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests (requires API keys and external services)",
    )


def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (may require external services)"
    )
    config.addinivalue_line("markers", "unit: mark test as unit test (default)")


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless explicitly enabled."""
    if config.getoption("--run-integration"):
        return
    skip_integration = pytest.mark.skip(
        reason="Integration tests disabled (use --run-integration to enable)."
    )
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


# ============================================================================
# Logging and Environment
# ============================================================================


@pytest.fixture(autouse=True)
def configure_test_logging(caplog):
    """Capture everything down to DEBUG for every test."""
    caplog.set_level(logging.DEBUG)
    yield


@pytest.fixture(autouse=True)
def mock_openai_api_key(monkeypatch):
    """
    Provide an API key and a credentials key for every test.

    Prevents real API calls and stops a developer .env from leaking in.
    """
    from querymesh.config import clear_settings_cache

    clear_settings_cache()
    test_key = "sk-test-key-1234567890-abcdefghijklmnop"
    monkeypatch.setenv("LLM_OPENAI_API_KEY", test_key)
    monkeypatch.setenv("QUERYMESH_CREDENTIALS_KEY", TEST_CREDENTIALS_KEY)
    monkeypatch.setenv("QUERYMESH_ENV_SOURCE", "environment")
    yield test_key
    clear_settings_cache()


@pytest.fixture
def credentials_key() -> str:
    return TEST_CREDENTIALS_KEY


@pytest.fixture
def cipher() -> FernetCredentialCipher:
    return FernetCredentialCipher(TEST_CREDENTIALS_KEY)


# ============================================================================
# Mock LLM Provider
# ============================================================================


@pytest.fixture
def scripted_llm() -> ScriptedLLM:
    """
    Mock LLM provider for testing stages.

    Usage:
        def test_stage(scripted_llm):
            scripted_llm.set("agents/intent.md", {"intent": "data_query", "confidence": 0.9})
    """
    return ScriptedLLM()


# ============================================================================
# Fake Embeddings
# ============================================================================


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder(
        vectors={
            "Donations DB": [1.0, 0.0, 0.0],
            "Camp Events": [0.6, 0.8, 0.0],
            "Annual Report": [0.0, 0.0, 1.0],
        }
    )


# ============================================================================
# Fake Connector
# ============================================================================


@pytest.fixture
def query_rows() -> list[dict[str, Any]]:
    return [
        {"city": "Hyderabad", "donations": 42},
        {"city": "Chennai", "donations": 17},
    ]


@pytest.fixture
def fake_connector(query_rows):
    """
    Mock database connector.

    Usage:
        def test_query(fake_connector):
            fake_connector.execute.side_effect = QueryError("boom")
    """
    connector = AsyncMock()
    connector.connect = AsyncMock()
    connector.close = AsyncMock()
    connector.execute = AsyncMock(
        return_value=QueryResult(
            rows=query_rows,
            row_count=len(query_rows),
            columns=list(query_rows[0].keys()),
            execution_time_ms=3.0,
        )
    )
    return connector


@pytest.fixture
def connector_factory(fake_connector):
    """Connector factory that records its kwargs and hands out the fake connector."""
    calls: list[dict[str, Any]] = []

    def _factory(**kwargs):
        calls.append(kwargs)
        return fake_connector

    _factory.calls = calls
    return _factory


# ============================================================================
# Sources and Registry
# ============================================================================


@pytest.fixture
def donations_schema() -> SchemaSnapshot:
    return SchemaSnapshot(
        tables=[
            SchemaTable(
                name="donations",
                columns=[
                    SchemaColumn(name="id", data_type="integer", nullable=False, primary_key=True),
                    SchemaColumn(name="donor_id", data_type="integer", references="donors.id"),
                    SchemaColumn(name="city", data_type="text"),
                    SchemaColumn(name="amount", data_type="numeric"),
                    SchemaColumn(name="donated_at", data_type="date"),
                ],
            ),
            SchemaTable(
                name="donors",
                columns=[
                    SchemaColumn(name="id", data_type="integer", nullable=False, primary_key=True),
                    SchemaColumn(name="name", data_type="text"),
                    SchemaColumn(name="blood_group", data_type="text"),
                ],
            ),
        ]
    )


@pytest.fixture
def donations_source(cipher, donations_schema) -> RegisteredSource:
    return RegisteredSource(
        id="src_donations",
        workspace_id=WORKSPACE_ID,
        name="Donations DB",
        kind="database",
        connection_type="postgresql",
        encrypted_config=cipher.encrypt_config(
            {
                "host": "db.internal",
                "port": 5432,
                "database": "charity",
                "username": "readonly",
                "password": "secret",
            }
        ),
        ai_summary=SourceSummary(
            description="Blood donation records by city and date",
            tags=["donations", "blood"],
        ),
        captured_schema=donations_schema,
    )


@pytest.fixture
def events_source() -> RegisteredSource:
    return RegisteredSource(
        id="src_events",
        workspace_id=WORKSPACE_ID,
        name="Camp Events",
        kind="url",
        endpoint_url="https://api.example.org/camps",
        ai_summary=SourceSummary(description="Upcoming donation camps by city"),
    )


@pytest.fixture
def report_source() -> RegisteredSource:
    return RegisteredSource(
        id="src_report",
        workspace_id=WORKSPACE_ID,
        name="Annual Report",
        kind="file",
        ai_summary=SourceSummary(description="Narrative annual report"),
        content_excerpt=[{"year": 2024, "camps": 120}],
    )


@pytest.fixture
def registry(donations_source, events_source, report_source) -> InMemorySourceRegistry:
    return InMemorySourceRegistry([donations_source, events_source, report_source])


# ============================================================================
# Common Test Data
# ============================================================================


@pytest.fixture
def sample_query() -> Query:
    """The donations-by-city question used across the suite."""
    return Query(text="How many donations came from Hyderabad?", workspace_id=WORKSPACE_ID)


@pytest.fixture
def rng() -> random.Random:
    return random.Random(7)
