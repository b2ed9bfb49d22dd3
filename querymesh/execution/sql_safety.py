"""
SQL Safety Checks

Generated SQL is untrusted. Before it reaches a connector it must be a single
read-only SELECT (optionally behind a CTE), free of injection patterns and
dangerous functions, and row-limited.

No LLM calls; deterministic and fast.
"""

import logging
import re
from dataclasses import dataclass

import sqlparse
from sqlparse import tokens as T

logger = logging.getLogger(__name__)

INJECTION_PATTERNS = [
    r";\s*DROP\s+",
    r";\s*DELETE\s+",
    r";\s*UPDATE\s+",
    r";\s*INSERT\s+",
    r";\s*ALTER\s+",
    r";\s*CREATE\s+",
    r";\s*TRUNCATE\s+",
    r"\bEXEC(?:UTE)?\s*\(",
    r"\bsp_executesql\b",
    r"\bxp_cmdshell\b",
    r"--",
    r"/\*.*?\*/",
    r"\bOR\s+1\s*=\s*1\b",
    r"\bOR\s+'[^']*'\s*=\s*'[^']*'",
]

DANGEROUS_FUNCTIONS = [
    r"\bLOAD_FILE\s*\(",
    r"\bINTO\s+OUTFILE\b",
    r"\bINTO\s+DUMPFILE\b",
    r"\bPG_READ_FILE\s*\(",
    r"\bPG_READ_BINARY_FILE\s*\(",
    r"\bPG_LS_DIR\s*\(",
    r"\bPG_SLEEP\s*\(",
    r"\bSLEEP\s*\(",
    r"\bBENCHMARK\s*\(",
    r"\bLO_IMPORT\s*\(",
    r"\bLO_EXPORT\s*\(",
    r"\bDBLINK\w*\s*\(",
]

FORBIDDEN_KEYWORDS = {
    "INSERT",
    "UPDATE",
    "DELETE",
    "MERGE",
    "UPSERT",
    "REPLACE",
    "DROP",
    "CREATE",
    "ALTER",
    "TRUNCATE",
    "GRANT",
    "REVOKE",
    "CALL",
    "EXEC",
    "EXECUTE",
    "COPY",
    "VACUUM",
    "LOCK",
}

COMPLEXITY_WEIGHTS = {
    "join": 0.2,
    "subquery": 0.3,
    "where": 0.1,
    "group_by": 0.2,
    "order_by": 0.1,
}

_INJECTION_RES = [re.compile(p, re.IGNORECASE | re.MULTILINE | re.DOTALL) for p in INJECTION_PATTERNS]
_DANGEROUS_RES = [re.compile(p, re.IGNORECASE) for p in DANGEROUS_FUNCTIONS]
_LIMIT_RE = re.compile(r"\bLIMIT\s+\d+", re.IGNORECASE)


class UnsafeSQLError(ValueError):
    """Raised when SQL fails a safety check."""


@dataclass(frozen=True)
class CheckedSQL:
    sql: str
    complexity_score: float
    limit_applied: bool


def _statements(sql: str) -> list[sqlparse.sql.Statement]:
    return [stmt for stmt in sqlparse.parse(sql) if stmt.value.strip().strip(";").strip()]


def _main_keyword(stmt: sqlparse.sql.Statement) -> str:
    """
    Leading DML keyword of a statement, looking past any CTE.

    ``WITH t AS (...) DELETE FROM users`` yields DELETE, not WITH.
    """
    first = stmt.token_first(skip_ws=True, skip_cm=True)
    if first is None:
        return ""
    if first.ttype not in T.Keyword.CTE and first.value.upper() != "WITH":
        return first.value.upper()

    for token in stmt.tokens:
        if token.ttype in T.Keyword.DML:
            return token.value.upper()
    return "UNKNOWN"


def validate_select(sql: str, row_limit: int = 100) -> CheckedSQL:
    """
    Check that SQL is a single safe SELECT and make sure it is row-limited.

    Raises:
        UnsafeSQLError: Describing the first failed check
    """
    text = (sql or "").strip()
    if not text:
        raise UnsafeSQLError("Empty SQL")

    statements = _statements(text)
    if len(statements) != 1:
        raise UnsafeSQLError("Multiple SQL statements detected - only single SELECT allowed")

    keyword = _main_keyword(statements[0])
    if keyword != "SELECT":
        raise UnsafeSQLError(f"Only SELECT queries allowed, found: {keyword or 'nothing'}")

    for token in statements[0].flatten():
        if token.is_keyword and token.value.upper() in FORBIDDEN_KEYWORDS:
            raise UnsafeSQLError(f"Forbidden keyword: {token.value.upper()}")

    for pattern in _INJECTION_RES:
        if pattern.search(text):
            raise UnsafeSQLError(f"Potential SQL injection detected: matches pattern '{pattern.pattern}'")

    for pattern in _DANGEROUS_RES:
        if pattern.search(text):
            raise UnsafeSQLError(f"Dangerous function detected: {pattern.pattern}")

    text = text.rstrip().rstrip(";").rstrip()
    limit_applied = False
    if not _LIMIT_RE.search(text):
        text = f"{text} LIMIT {row_limit}"
        limit_applied = True

    return CheckedSQL(sql=text, complexity_score=complexity_score(text), limit_applied=limit_applied)


def complexity_score(sql: str) -> float:
    """Weighted count of joins, subqueries and clauses, capped at 1.0."""
    upper = sql.upper()
    score = COMPLEXITY_WEIGHTS["join"] * len(re.findall(r"\bJOIN\b", upper))
    score += COMPLEXITY_WEIGHTS["subquery"] * len(re.findall(r"\(\s*SELECT\b", upper))
    if re.search(r"\bWHERE\b", upper):
        score += COMPLEXITY_WEIGHTS["where"]
    if re.search(r"\bGROUP\s+BY\b", upper):
        score += COMPLEXITY_WEIGHTS["group_by"]
    if re.search(r"\bORDER\s+BY\b", upper):
        score += COMPLEXITY_WEIGHTS["order_by"]
    return round(min(score, 1.0), 2)


def extract_tables(sql: str) -> list[str]:
    """Table names following FROM, in order, without duplicates."""
    seen: list[str] = []
    for name in re.findall(r"FROM\s+(\w+)", sql, re.IGNORECASE):
        if name not in seen:
            seen.append(name)
    return seen
