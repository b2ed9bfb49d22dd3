"""Tests for the database and external API coordinators."""

import httpx
import pytest

from querymesh.config import DatabaseSettings
from querymesh.connectors.base import QueryError
from querymesh.execution.database import (
    DatabaseCoordinator,
    effective_schema,
    fallback_sql,
    find_relevant_table,
)
from querymesh.execution.external_api import ExternalAPICoordinator, normalize_payload
from querymesh.models.results import ApiResult, DatabaseResult

SQL_PROMPT = "agents/sql_generator.md"


@pytest.fixture
def coordinator(cipher, scripted_llm, connector_factory):
    return DatabaseCoordinator(
        cipher,
        llm=scripted_llm,
        connector_factory=connector_factory,
        settings=DatabaseSettings(row_limit=25),
    )


class TestDatabaseCoordinator:
    @pytest.mark.asyncio
    async def test_generated_sql_is_checked_and_run(
        self, coordinator, scripted_llm, donations_source, sample_query, fake_connector, connector_factory
    ):
        scripted_llm.set(
            SQL_PROMPT,
            {"query": "SELECT city, COUNT(*) AS donations FROM donations WHERE city = 'Hyderabad' GROUP BY city"},
        )

        result = await coordinator.execute(donations_source, sample_query)

        assert isinstance(result, DatabaseResult)
        assert result.success is True
        assert result.row_count == 2
        assert result.query_executed.endswith("LIMIT 25")
        assert result.tables_accessed == ["donations"]
        assert result.dialect == "postgresql"
        assert result.confidence_score == 0.9
        assert result.tokens_used == 10

        executed_sql = fake_connector.execute.await_args.args[0]
        assert "donations" in executed_sql and "city" in executed_sql
        kwargs = connector_factory.calls[0]
        assert kwargs["database_type"] == "postgresql"
        assert kwargs["host"] == "db.internal"
        assert kwargs["user"] == "readonly"
        assert kwargs["password"] == "secret"
        fake_connector.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_prompt_contains_schema(self, coordinator, scripted_llm, donations_source, sample_query):
        await coordinator.execute(donations_source, sample_query)

        prompt = scripted_llm.requests[0].messages[1].content
        assert '"name": "donations"' in prompt
        assert "blood_group" in prompt

    @pytest.mark.asyncio
    async def test_missing_schema_never_connects(self, coordinator, donations_source, sample_query, connector_factory):
        source = donations_source.model_copy(update={"captured_schema": None})

        result = await coordinator.execute(source, sample_query)

        assert result.success is False
        assert result.error_kind == "schema_unavailable"
        assert connector_factory.calls == []

    @pytest.mark.asyncio
    async def test_unsafe_sql_not_executed(
        self, coordinator, scripted_llm, donations_source, sample_query, fake_connector
    ):
        scripted_llm.set(SQL_PROMPT, {"query": "DELETE FROM donations"})

        result = await coordinator.execute(donations_source, sample_query)

        assert result.success is False
        assert result.error_kind == "unsafe_sql"
        fake_connector.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_generation_fallback(self, coordinator, scripted_llm, donations_source, sample_query, fake_connector):
        scripted_llm.set(SQL_PROMPT, RuntimeError("rate limited"))

        result = await coordinator.execute(donations_source, sample_query)

        assert result.success is True
        assert result.query_executed == "SELECT COUNT(*) AS count FROM donations LIMIT 25"
        assert result.confidence_score == 0.5

    @pytest.mark.asyncio
    async def test_query_error_closes_connector(
        self, coordinator, scripted_llm, donations_source, sample_query, fake_connector
    ):
        scripted_llm.set(SQL_PROMPT, {"query": "SELECT * FROM donations"})
        fake_connector.execute.side_effect = QueryError("relation does not exist")

        result = await coordinator.execute(donations_source, sample_query)

        assert result.success is False
        assert result.error_kind == "execution_failed"
        assert "relation does not exist" in result.error
        fake_connector.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unsupported_dialect_fails_result(self, coordinator, donations_source, sample_query):
        source = donations_source.model_copy(update={"connection_type": "oracle"})

        result = await coordinator.execute(source, sample_query)

        assert result.success is False
        assert "Unsupported database type" in result.error

    @pytest.mark.asyncio
    async def test_wrong_key_fails_result(self, scripted_llm, connector_factory, donations_source, sample_query):
        from querymesh.services.encryption import FernetCredentialCipher

        scripted_llm.set(SQL_PROMPT, {"query": "SELECT * FROM donations"})
        other = FernetCredentialCipher(FernetCredentialCipher.generate_key())
        coordinator = DatabaseCoordinator(other, llm=scripted_llm, connector_factory=connector_factory)

        result = await coordinator.execute(donations_source, sample_query)

        assert result.success is False
        assert result.error.startswith("CredentialError")
        assert connector_factory.calls == []


class TestSchemaHelpers:
    def test_selection_matching_nothing_uses_full_schema(self, donations_source):
        source = donations_source.model_copy(update={"selected_tables": ["ghost"]})
        assert effective_schema(source).table_names == ["donations", "donors"]

    def test_selection_applied(self, donations_source):
        source = donations_source.model_copy(update={"selected_tables": ["donors"]})
        assert effective_schema(source).table_names == ["donors"]

    def test_relevant_table_by_keywords(self, donations_schema):
        table = find_relevant_table("which blood group do most donors have", donations_schema)
        assert table.name == "donors"

    def test_fallback_sql_select_all(self, donations_schema):
        assert fallback_sql("list donors", donations_schema, 10) == "SELECT * FROM donors LIMIT 10"


def _transport(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestExternalAPICoordinator:
    @pytest.mark.asyncio
    async def test_fetches_rows(self, events_source, sample_query):
        def handler(request):
            assert str(request.url) == "https://api.example.org/camps"
            return httpx.Response(200, json=[{"city": "Hyderabad", "camps": 3}])

        async with _transport(handler) as client:
            result = await ExternalAPICoordinator(client=client).execute(events_source, sample_query)

        assert isinstance(result, ApiResult)
        assert result.success is True
        assert result.data == [{"city": "Hyderabad", "camps": 3}]
        assert result.response_status == 200
        assert result.endpoint == "https://api.example.org/camps"

    @pytest.mark.asyncio
    async def test_http_error_becomes_failed_result(self, events_source, sample_query):
        async with _transport(lambda request: httpx.Response(503)) as client:
            result = await ExternalAPICoordinator(client=client).execute(events_source, sample_query)

        assert result.success is False
        assert result.error_kind == "execution_failed"
        assert result.response_status == 503

    @pytest.mark.asyncio
    async def test_file_source_returns_excerpt(self, report_source, sample_query):
        result = await ExternalAPICoordinator().execute(report_source, sample_query)

        assert result.success is True
        assert result.data == [{"year": 2024, "camps": 120}]

    @pytest.mark.asyncio
    async def test_missing_endpoint(self, events_source, sample_query):
        source = events_source.model_copy(update={"endpoint_url": None})
        result = await ExternalAPICoordinator().execute(source, sample_query)
        assert result.success is False
        assert "no endpoint URL" in result.error

    def test_normalize_payload(self):
        assert normalize_payload({"total": 4}) == [{"total": 4}]
        assert normalize_payload([1, {"a": 2}]) == [{"value": 1}, {"a": 2}]
        assert normalize_payload("plain text") == [{"content": "plain text"}]
