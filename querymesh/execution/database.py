"""
DatabaseCoordinator: answer a question from one relational source.

Decrypts the stored connection, generates SQL against the captured schema,
checks it, runs it and packages the rows. Every failure ends up inside the
returned DatabaseResult; nothing is raised to the caller except cancellation.
"""

import asyncio
import json
import logging
import time
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, Field

from querymesh.config import DatabaseSettings
from querymesh.connectors.base import BaseConnector
from querymesh.connectors.factory import (
    connection_params_from_config,
    create_connector,
    resolve_database_type,
)
from querymesh.execution.sql_safety import UnsafeSQLError, extract_tables, validate_select
from querymesh.llm.base import BaseLLMProvider
from querymesh.llm.models import LLMMessage
from querymesh.llm.structured import complete_json, validate_payload
from querymesh.models.errors import LLMCallFailed, SchemaUnavailable
from querymesh.models.query import Query
from querymesh.models.results import DatabaseResult, failed_result
from querymesh.models.sources import RegisteredSource, SchemaSnapshot, SchemaTable
from querymesh.prompts.loader import PromptLoader
from querymesh.services.encryption import FernetCredentialCipher

logger = logging.getLogger(__name__)

STAGE = "execution"

LLM_CONFIDENCE = 0.9
FALLBACK_CONFIDENCE = 0.5

TABLE_KEYWORDS: dict[str, list[str]] = {
    "donation": ["donation", "donor", "blood", "donate"],
    "user": ["user", "person", "member", "account"],
    "order": ["order", "purchase", "transaction", "payment"],
    "product": ["product", "item", "inventory", "catalog"],
    "event": ["event", "activity", "meeting", "session"],
    "report": ["report", "log", "audit", "history"],
}

ConnectorFactory = Callable[..., BaseConnector]


class GeneratedSQL(BaseModel):
    query: str = ""
    query_type: str = ""
    reasoning: str = ""
    tables_used: list[str] = Field(default_factory=list)
    columns_used: list[str] = Field(default_factory=list)


def effective_schema(source: RegisteredSource) -> SchemaSnapshot | None:
    """
    Captured schema narrowed to the source's selected tables.

    If the selection matches nothing the unfiltered schema is used instead.
    """
    schema = source.captured_schema
    if schema is None or schema.is_empty:
        return None
    restricted = schema.restrict_to(source.selected_tables)
    if restricted.is_empty:
        logger.warning(
            f"Table selection for {source.id} matched nothing, using full schema",
            extra={"source_id": source.id, "selected_tables": source.selected_tables},
        )
        return schema
    return restricted


def find_relevant_table(question: str, schema: SchemaSnapshot) -> SchemaTable | None:
    """Score tables against the question by name, keyword category and column hits."""
    candidates = schema.tables or schema.views
    if not candidates:
        return None

    text = question.lower()
    best: SchemaTable | None = None
    best_score = 0
    for table in candidates:
        name = table.name.lower()
        score = 0
        if name in text:
            score += 10
        for category, keywords in TABLE_KEYWORDS.items():
            for keyword in keywords:
                if keyword in text and (category in name or keyword in name):
                    score += 5
        for column in table.column_names:
            if column.lower() in text:
                score += 3
        if score > best_score:
            best, best_score = table, score

    return best or candidates[0]


def fallback_sql(question: str, schema: SchemaSnapshot, row_limit: int = 100) -> str | None:
    """Single-table SQL used when generation is unavailable."""
    table = find_relevant_table(question, schema)
    if table is None:
        return None
    text = question.lower()
    if "count" in text or "how many" in text:
        return f"SELECT COUNT(*) AS count FROM {table.name}"
    return f"SELECT * FROM {table.name} LIMIT {row_limit}"


class DatabaseCoordinator:
    """
    Executes a question against one database source.

    Args:
        cipher: Decrypts the stored connection config
        llm: Provider used for SQL generation; None forces the fallback
        connector_factory: Builds a connector from connection parameters
        settings: Timeouts, pool size and row limit
    """

    def __init__(
        self,
        cipher: FernetCredentialCipher,
        llm: BaseLLMProvider | None = None,
        prompts: PromptLoader | None = None,
        connector_factory: ConnectorFactory = create_connector,
        settings: DatabaseSettings | None = None,
        llm_timeout_seconds: float = 30.0,
    ):
        self.cipher = cipher
        self.llm = llm
        self.prompts = prompts or PromptLoader()
        self.connector_factory = connector_factory
        self.settings = settings or DatabaseSettings()
        self.llm_timeout_seconds = llm_timeout_seconds

    async def execute(self, source: RegisteredSource, query: Query) -> DatabaseResult:
        start_time = time.perf_counter()
        tokens = 0

        def elapsed() -> float:
            return (time.perf_counter() - start_time) * 1000

        try:
            schema = effective_schema(source)
            if schema is None:
                error = SchemaUnavailable(STAGE, f"No captured schema for {source.name}")
                logger.warning(str(error), extra={"source_id": source.id})
                return failed_result(
                    source.id, source.name, "database", error.message,
                    error_kind="schema_unavailable", execution_time_ms=elapsed(),
                )

            dialect = resolve_database_type(source.connection_type or "postgresql")
            sql, tokens, generated = await self.generate_sql(query.text, schema, dialect)
            if not sql:
                return failed_result(
                    source.id, source.name, "database", "No SQL could be generated",
                    execution_time_ms=elapsed(), tokens_used=tokens,
                )

            try:
                checked = validate_select(sql, self.settings.row_limit)
            except UnsafeSQLError as e:
                logger.warning(
                    f"Rejected generated SQL for {source.id}: {e}",
                    extra={"source_id": source.id, "sql": sql},
                )
                return failed_result(
                    source.id, source.name, "database", f"Generated SQL failed safety checks: {e}",
                    error_kind="unsafe_sql", execution_time_ms=elapsed(), tokens_used=tokens,
                )

            rows = await self._run(source, dialect, checked.sql)
            logger.info(
                f"Executed SQL on {source.id}",
                extra={
                    "source_id": source.id,
                    "row_count": len(rows),
                    "complexity_score": checked.complexity_score,
                },
            )
            return DatabaseResult(
                source_id=source.id,
                source_name=source.name,
                success=True,
                data=rows,
                execution_time_ms=elapsed(),
                tokens_used=tokens,
                confidence_score=LLM_CONFIDENCE if generated else FALLBACK_CONFIDENCE,
                query_executed=checked.sql,
                tables_accessed=extract_tables(checked.sql),
                dialect=dialect,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                f"Database execution failed for {source.id}",
                extra={"source_id": source.id, "error_type": type(e).__name__},
                exc_info=True,
            )
            return failed_result(
                source.id, source.name, "database", f"{type(e).__name__}: {e}",
                execution_time_ms=elapsed(), tokens_used=tokens,
            )

    async def generate_sql(
        self, question: str, schema: SchemaSnapshot, dialect: str
    ) -> tuple[str | None, int, bool]:
        """
        Produce SQL for the question.

        Returns:
            (sql, tokens, generated_by_llm)
        """
        if self.llm is not None:
            messages = [
                LLMMessage(role="system", content=self.prompts.load("system/main.md")),
                LLMMessage(
                    role="user",
                    content=self.prompts.render(
                        "agents/sql_generator.md",
                        user_query=question,
                        dialect=dialect,
                        schema_json=json.dumps(schema.to_prompt_dict(), indent=2),
                        row_limit=self.settings.row_limit,
                    ),
                ),
            ]
            try:
                payload, tokens = await complete_json(
                    self.llm,
                    messages,
                    stage=STAGE,
                    temperature=0.1,
                    max_tokens=1000,
                    timeout=self.llm_timeout_seconds,
                    prompt="agents/sql_generator.md",
                )
            except LLMCallFailed as e:
                logger.warning("SQL generation failed, using fallback", extra={"error": e.to_dict()})
                payload, tokens = None, 0

            parsed = validate_payload(GeneratedSQL, payload, STAGE)
            if parsed is not None and parsed.query.strip():
                return parsed.query.strip(), tokens, True
        else:
            tokens = 0

        return fallback_sql(question, schema, self.settings.row_limit), tokens, False

    async def _run(self, source: RegisteredSource, dialect: str, sql: str) -> list[dict[str, Any]]:
        if not source.encrypted_config:
            raise ValueError(f"Source {source.id} has no stored connection")
        config = self.cipher.decrypt_config(source.encrypted_config)
        params = connection_params_from_config(config)

        connector = self.connector_factory(
            database_type=dialect,
            read_only=self.settings.read_only,
            timeout=self.settings.statement_timeout_seconds,
            connect_timeout=self.settings.connect_timeout_seconds,
            **params,
        )
        try:
            await connector.connect()
            result = await connector.execute(sql, timeout=self.settings.statement_timeout_seconds)
            return result.rows
        finally:
            await connector.close()
