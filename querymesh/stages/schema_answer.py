"""
SchemaAnswerStage: answer structure questions from the captured schema.

"What tables are there?" does not need SQL. When the question is about the
database's shape and a database source has a captured schema, the answer is
composed directly from it with no LLM call.
"""

import logging

from querymesh.models.query import Query
from querymesh.models.sources import RegisteredSource, SchemaSnapshot
from querymesh.models.stages import SchemaAnswerResult
from querymesh.services.registry import SourceRegistry
from querymesh.stages.base import BaseStage
from querymesh.utils.pattern_matcher import QueryPatternMatcher, QueryPatternType

logger = logging.getLogger(__name__)

SCHEMA_ANSWER_TOKENS = 50


class SchemaAnswerStage(BaseStage):
    """Deterministic answers about tables, columns and foreign keys."""

    def __init__(
        self,
        registry: SourceRegistry,
        matcher: QueryPatternMatcher | None = None,
        **kwargs,
    ):
        super().__init__(name="schema_answer", **kwargs)
        self.registry = registry
        self.matcher = matcher or QueryPatternMatcher()

    async def execute(self, query: Query) -> SchemaAnswerResult:
        if not self.matcher.is_schema_question(query.text):
            return SchemaAnswerResult(handled=False)

        source = await self._first_database_source(query.workspace_id)
        if source is None:
            logger.info(
                "Schema question with no captured schema, continuing to discovery",
                extra={"stage": self.name, "workspace_id": query.workspace_id},
            )
            return SchemaAnswerResult(handled=False)

        schema = source.captured_schema.restrict_to(source.selected_tables)
        if schema.is_empty:
            schema = source.captured_schema

        content = self._answer(query.text, schema)
        first_table = schema.table_names[0] if schema.table_names else "table_name"
        return SchemaAnswerResult(
            handled=True,
            content=content,
            source_id=source.id,
            confidence=0.9,
            follow_up_questions=[
                f"What data is in the {first_table} table?",
                f"Show me the structure of the {first_table} table",
                "What are the relationships between tables?",
            ],
            tokens_used=SCHEMA_ANSWER_TOKENS,
        )

    async def _first_database_source(self, workspace_id: str) -> RegisteredSource | None:
        for source in await self.registry.list_sources(workspace_id):
            if (
                source.kind == "database"
                and source.is_ready
                and source.captured_schema is not None
                and not source.captured_schema.is_empty
            ):
                return source
        return None

    def _answer(self, text: str, schema: SchemaSnapshot) -> str:
        patterns = {pattern.pattern_type for pattern in self.matcher.match(text)}
        tables = schema.tables

        if QueryPatternType.TABLE_LIST in patterns:
            names = "\n".join(f"• {name}" for name in schema.table_names)
            return f"This database contains {len(tables)} tables:\n\n{names}"

        if QueryPatternType.COLUMN_LIST in patterns:
            mentioned = self.matcher.mentioned_names(text, schema.table_names)
            if mentioned:
                table = schema.find(mentioned[0])
                columns = "\n".join(f"• {col.name} ({col.data_type})" for col in table.columns)
                return f"The {table.name} table has {len(table.columns)} columns:\n\n{columns}"

        if QueryPatternType.TABLE_COUNT in patterns:
            return f"This database contains {len(tables)} tables."

        if QueryPatternType.RELATIONSHIPS in patterns:
            links = [
                f"• {table.name}.{column.name} → {column.references}"
                for table in tables
                for column in table.columns
                if column.references
            ]
            if not links:
                return (
                    "I don't see any explicit foreign key relationships defined in the schema. "
                    "The relationships may be implicit or defined elsewhere."
                )
            joined = "\n".join(links)
            return f"I found {len(links)} foreign key relationships in this database:\n\n{joined}"

        total_columns = sum(len(table.columns) for table in tables)
        return (
            f"This database contains {len(tables)} tables with a total of {total_columns} "
            "columns. The database structure is ready for analysis."
        )
