"""
Data Source Models

Registry records describe what a workspace has connected; candidates are the
per-query view of those records that discovery scores and ranking orders.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

SourceKind = Literal["database", "file", "url", "google_docs", "api_endpoint"]
SourceStatus = Literal["ready", "processing", "failed", "inactive"]


class SourceSummary(BaseModel):
    """AI-generated description of a data source."""

    description: str = ""
    key_points: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)


class SchemaColumn(BaseModel):
    """Column in a captured table or view."""

    name: str
    data_type: str = "text"
    nullable: bool = True
    primary_key: bool = False
    references: str | None = Field(
        None, description="Foreign key target as 'table.column'"
    )


class SchemaTable(BaseModel):
    """Captured table or view definition."""

    name: str
    columns: list[SchemaColumn] = Field(default_factory=list)
    description: str | None = None

    @property
    def column_names(self) -> list[str]:
        return [column.name for column in self.columns]


class SchemaSnapshot(BaseModel):
    """Schema captured when the database source was connected."""

    tables: list[SchemaTable] = Field(default_factory=list)
    views: list[SchemaTable] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.tables and not self.views

    @property
    def table_names(self) -> list[str]:
        return [table.name for table in self.tables]

    def find(self, name: str) -> SchemaTable | None:
        """Find a table or view by case-insensitive name."""
        lowered = name.lower()
        for table in [*self.tables, *self.views]:
            if table.name.lower() == lowered:
                return table
        return None

    def restrict_to(self, selected: list[str]) -> "SchemaSnapshot":
        """
        Apply a table selection.

        Tables outside the selection are dropped. Views are only narrowed when
        the selection names at least one of them.
        """
        if not selected:
            return self
        wanted = {name.lower() for name in selected}
        tables = [table for table in self.tables if table.name.lower() in wanted]
        views = self.views
        if any(view.name.lower() in wanted for view in self.views):
            views = [view for view in self.views if view.name.lower() in wanted]
        return SchemaSnapshot(tables=tables, views=views)

    def to_prompt_dict(self) -> dict[str, Any]:
        """Compact JSON-ready form used in SQL generation prompts."""

        def _table(table: SchemaTable) -> dict[str, Any]:
            return {
                "name": table.name,
                "description": table.description,
                "columns": [
                    {
                        "name": column.name,
                        "type": column.data_type,
                        "nullable": column.nullable,
                        "primary_key": column.primary_key,
                        "references": column.references,
                    }
                    for column in table.columns
                ],
            }

        return {
            "tables": [_table(table) for table in self.tables],
            "views": [_table(view) for view in self.views],
        }


class RegisteredSource(BaseModel):
    """A data source as stored in the workspace registry."""

    id: str
    workspace_id: str
    name: str
    kind: SourceKind
    status: SourceStatus = "ready"
    connection_type: str | None = Field(None, description="SQL dialect for database sources")
    encrypted_config: str | None = Field(None, description="Fernet token of the connection config")
    ai_summary: SourceSummary | None = None
    captured_schema: SchemaSnapshot | None = None
    selected_tables: list[str] = Field(default_factory=list)
    endpoint_url: str | None = None
    content_excerpt: list[dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @property
    def is_ready(self) -> bool:
        return self.status == "ready"

    def selected_schema(self) -> SchemaSnapshot | None:
        """
        Captured schema narrowed to selected_tables.

        Falls back to the whole capture when the selection matches nothing.
        """
        if self.captured_schema is None:
            return None
        restricted = self.captured_schema.restrict_to(self.selected_tables)
        return self.captured_schema if restricted.is_empty else restricted

    def summary_text(self) -> str:
        """Compose the text that discovery embeds for this source."""
        parts = [f"{self.name} ({self.kind})"]
        if self.ai_summary:
            if self.ai_summary.description:
                parts.append(self.ai_summary.description)
            if self.ai_summary.key_points:
                parts.append("Key Points: " + ", ".join(self.ai_summary.key_points[:3]))
            if self.ai_summary.tags:
                parts.append("Tags: " + ", ".join(self.ai_summary.tags[:5]))
        schema = self.selected_schema()
        if schema and schema.tables:
            parts.append("Tables: " + ", ".join(schema.table_names))
        return " - ".join(parts)


class DataSourceCandidate(BaseModel):
    """Per-query view of a registered source, scored by discovery."""

    id: str
    name: str
    kind: SourceKind
    ai_summary: SourceSummary | None = None
    embedding: list[float] = Field(default_factory=list)
    confidence_score: float = Field(default=0.0, ge=0.0, le=1.0)
    relevance_score: float = Field(default=0.0, ge=0.0, le=1.0)
    reasoning: str | None = None

    @classmethod
    def from_registered(cls, source: RegisteredSource) -> "DataSourceCandidate":
        return cls(
            id=source.id,
            name=source.name,
            kind=source.kind,
            ai_summary=source.ai_summary,
        )
