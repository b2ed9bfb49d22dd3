from querymesh.execution.database import DatabaseCoordinator, fallback_sql, find_relevant_table
from querymesh.execution.external_api import ExternalAPICoordinator, normalize_payload
from querymesh.execution.sql_safety import (
    CheckedSQL,
    UnsafeSQLError,
    complexity_score,
    extract_tables,
    validate_select,
)

__all__ = [
    "CheckedSQL",
    "DatabaseCoordinator",
    "ExternalAPICoordinator",
    "UnsafeSQLError",
    "complexity_score",
    "extract_tables",
    "fallback_sql",
    "find_relevant_table",
    "normalize_payload",
    "validate_select",
]
