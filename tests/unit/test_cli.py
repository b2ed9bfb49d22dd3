"""
Unit Tests for CLI

Tests the QueryMesh CLI commands.
"""

import json
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest
from click.testing import CliRunner
from cryptography.fernet import Fernet

from querymesh.cli import cli
from querymesh.models.response import ResponseEnvelope, ResponseMetadata

SOURCES_YAML = """
sources:
  - id: src_donations
    workspace_id: ws_charity
    name: Donations DB
    kind: database
    connection_type: postgresql
    connection: {host: localhost, port: 5432, database: charity, username: ro}
    captured_schema:
      tables:
        - name: donations
          columns: [{name: id}, {name: city}]
  - id: src_feed
    workspace_id: ws_charity
    name: Camp Feed
    kind: url
    endpoint_url: https://api.example.org/camps
"""


def _envelope(status="completed", content="Hyderabad recorded 42 donations."):
    return ResponseEnvelope(
        content=content,
        metadata=ResponseMetadata(
            processing_status=status,
            workspace_id="ws_charity",
            data_sources_used=["src_donations"],
            follow_up_questions=["How does Chennai compare?"],
        ),
        tokens_used=130,
        tokens_rounded=1000,
        credits_used=1,
        sql_queries=["SELECT COUNT(*) FROM donations LIMIT 100"],
    )


@pytest.fixture(autouse=True)
def restore_logger_levels():
    """The CLI quiets library loggers; put them back after each test."""
    names = ("querymesh", "httpx", "openai", "anthropic", "asyncio")
    levels = {name: logging.getLogger(name).level for name in names}
    yield
    for name, level in levels.items():
        logging.getLogger(name).setLevel(level)


@pytest.fixture
def runner():
    """Create CLI test runner."""
    return CliRunner()


@pytest.fixture
def sources_file(tmp_path):
    path = tmp_path / "sources.yaml"
    path.write_text(SOURCES_YAML, encoding="utf-8")
    return str(path)


@pytest.fixture
def fake_pipeline(monkeypatch):
    """Replace pipeline construction; returns the mock pipeline."""
    pipeline = MagicMock()
    pipeline.run = AsyncMock(return_value=_envelope())
    factory = MagicMock(return_value=pipeline)
    monkeypatch.setattr("querymesh.cli.create_pipeline", factory)
    pipeline.factory = factory
    return pipeline


class TestCLIBasics:
    """Test basic CLI functionality."""

    def test_cli_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "QueryMesh" in result.output
        for command in ("ask", "sources", "keygen"):
            assert command in result.output

    def test_cli_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_keygen_prints_fernet_key(self, runner):
        result = runner.invoke(cli, ["keygen"])
        assert result.exit_code == 0
        Fernet(result.output.strip().encode("utf-8"))


class TestAskCommand:
    def test_requires_workspace(self, runner, sources_file):
        result = runner.invoke(cli, ["ask", "How many donations?", "--sources", sources_file])
        assert result.exit_code != 0
        assert "--workspace" in result.output

    def test_missing_sources_file(self, runner, tmp_path):
        result = runner.invoke(
            cli, ["ask", "How many donations?", "-w", "ws_charity", "--sources", str(tmp_path / "none.yaml")]
        )
        assert result.exit_code == 1
        assert "Sources file not found" in result.output

    def test_prints_answer(self, runner, sources_file, fake_pipeline):
        result = runner.invoke(
            cli, ["ask", "How many donations?", "-w", "ws_charity", "--sources", sources_file, "--metrics"]
        )

        assert result.exit_code == 0
        assert "Hyderabad recorded 42 donations." in result.output
        assert "SELECT COUNT(*) FROM donations LIMIT 100" in result.output
        assert "How does Chennai compare?" in result.output
        assert "Credits:" in result.output

        query = fake_pipeline.run.await_args.args[0]
        assert query.text == "How many donations?"
        assert query.workspace_id == "ws_charity"
        registry = fake_pipeline.factory.call_args.kwargs["registry"]
        assert len(registry) == 2

    def test_json_output(self, runner, sources_file, fake_pipeline):
        result = runner.invoke(
            cli,
            ["ask", "How many donations?", "-w", "ws_charity", "--sources", sources_file, "--json", "--agent", "ops"],
        )

        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload["metadata"]["processing_status"] == "completed"
        assert payload["credits_used"] == 1
        assert fake_pipeline.run.await_args.args[0].agent_id == "ops"

    def test_failed_status_exits_nonzero(self, runner, sources_file, fake_pipeline):
        fake_pipeline.run.return_value = _envelope(status="failed", content="Something went wrong.")

        result = runner.invoke(cli, ["ask", "q", "-w", "ws_charity", "--sources", sources_file])

        assert result.exit_code == 1

    def test_pipeline_exception_exits_nonzero(self, runner, sources_file, fake_pipeline):
        fake_pipeline.run.side_effect = RuntimeError("provider unavailable")

        result = runner.invoke(cli, ["ask", "q", "-w", "ws_charity", "--sources", sources_file])

        assert result.exit_code == 1
        assert "provider unavailable" in result.output


class TestSourcesCommand:
    def test_lists_workspace_sources(self, runner, sources_file):
        result = runner.invoke(cli, ["sources", "-w", "ws_charity", "--sources", sources_file])

        assert result.exit_code == 0
        assert "src_donations" in result.output
        assert "Camp Feed" in result.output

    def test_empty_workspace(self, runner, sources_file):
        result = runner.invoke(cli, ["sources", "-w", "ws_other", "--sources", sources_file])

        assert result.exit_code == 0
        assert "No sources registered for ws_other" in result.output
