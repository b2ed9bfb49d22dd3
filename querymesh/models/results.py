"""
Source Execution Results

One result per executed source, successes and failures alike. The two result
shapes share a common envelope and are told apart by ``result_type``.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

ErrorKind = Literal[
    "schema_unavailable",
    "unsafe_sql",
    "execution_failed",
    "cancelled",
]


class _ResultEnvelope(BaseModel):
    source_id: str
    source_name: str = ""
    success: bool
    data: list[dict[str, Any]] = Field(default_factory=list)
    error: str | None = None
    error_kind: ErrorKind | None = None
    execution_time_ms: float = 0.0
    tokens_used: int = 0
    confidence_score: float = Field(default=0.0, ge=0.0, le=1.0)

    @property
    def row_count(self) -> int:
        return len(self.data)


class DatabaseResult(_ResultEnvelope):
    """Result of running generated SQL against a database source."""

    result_type: Literal["database"] = "database"
    query_executed: str | None = None
    tables_accessed: list[str] = Field(default_factory=list)
    dialect: str | None = None


class ApiResult(_ResultEnvelope):
    """Result of fetching an external endpoint or stored file content."""

    result_type: Literal["api"] = "api"
    endpoint: str | None = None
    response_status: int | None = None


SourceExecutionResult = Annotated[
    Union[DatabaseResult, ApiResult],
    Field(discriminator="result_type"),
]

source_result_adapter: TypeAdapter[SourceExecutionResult] = TypeAdapter(SourceExecutionResult)


def failed_result(
    source_id: str,
    source_name: str,
    kind: str,
    error: str,
    error_kind: ErrorKind = "execution_failed",
    execution_time_ms: float = 0.0,
    tokens_used: int = 0,
) -> DatabaseResult | ApiResult:
    """Build a failed result of the right shape for a source kind."""
    fields = dict(
        source_id=source_id,
        source_name=source_name,
        success=False,
        error=error,
        error_kind=error_kind,
        execution_time_ms=execution_time_ms,
        tokens_used=tokens_used,
        confidence_score=0.0,
    )
    if kind == "database":
        return DatabaseResult(**fields)
    return ApiResult(**fields)
