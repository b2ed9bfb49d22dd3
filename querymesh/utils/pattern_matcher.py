"""
Query Pattern Matcher

Keyword and regex detection shared by the deterministic parts of the pipeline:
schema-only questions, count and comparison phrasing, and agent turns that
asked the user to clarify.
"""

import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class QueryPatternType(StrEnum):
    SCHEMA_QUESTION = "schema_question"
    TABLE_LIST = "table_list"
    COLUMN_LIST = "column_list"
    TABLE_COUNT = "table_count"
    RELATIONSHIPS = "relationships"
    COUNT_REQUEST = "count_request"
    COMPARISON = "comparison"


@dataclass
class QueryPattern:
    pattern_type: QueryPatternType
    confidence: float = 1.0
    extracted: dict[str, Any] = field(default_factory=dict)


_SCHEMA_PHRASES = (
    "what tables",
    "what columns",
    "database structure",
    "schema",
    "table structure",
    "column names",
    "database schema",
)

_CLARIFICATION_TRIGGERS = (
    "clarification",
    "clarify",
    "specify",
    "more specific",
    "which",
    "what exactly",
    "could you clarify",
    "to provide the most accurate",
    "i need to know",
    "please provide more",
    "more details",
    "specific details",
)


class QueryPatternMatcher:
    """
    Single location for keyword-driven query detection.

    Usage:
        matcher = QueryPatternMatcher()
        if matcher.is_schema_question("what tables are there?"):
            ...
    """

    def __init__(self, config: dict[str, Any] | None = None):
        self.config = config or {}
        self._compile_patterns()

    def _compile_patterns(self) -> None:
        self._table_list_patterns = [
            re.compile(p, re.IGNORECASE)
            for p in [r"\bwhat tables\b", r"\blist tables\b", r"\bshow tables\b", r"\bwhich tables\b"]
        ]
        self._column_list_patterns = [
            re.compile(p, re.IGNORECASE)
            for p in [
                r"\bwhat columns\b",
                r"\blist columns\b",
                r"\bshow columns\b",
                r"\bcolumn names\b",
                r"\btable structure\b",
            ]
        ]
        self._table_count_patterns = [
            re.compile(r"\bhow many tables\b", re.IGNORECASE),
            re.compile(r"\bnumber of tables\b", re.IGNORECASE),
        ]
        self._relationship_patterns = [
            re.compile(r"\brelationships?\b", re.IGNORECASE),
            re.compile(r"\bforeign keys?\b", re.IGNORECASE),
        ]
        self._count_patterns = [
            re.compile(r"\bhow many\b", re.IGNORECASE),
            re.compile(r"\bcount\b", re.IGNORECASE),
            re.compile(r"\btotal\b", re.IGNORECASE),
            re.compile(r"\bsum\b", re.IGNORECASE),
        ]
        self._comparison_patterns = [
            re.compile(r"\bcompare\b", re.IGNORECASE),
            re.compile(r"\bvs\.?\b", re.IGNORECASE),
            re.compile(r"\bversus\b", re.IGNORECASE),
        ]

    def match(self, query: str) -> list[QueryPattern]:
        """Return every pattern found in the query."""
        text = query.strip().lower()
        patterns: list[QueryPattern] = []
        if not text:
            return patterns

        if self.is_schema_question(text):
            patterns.append(QueryPattern(pattern_type=QueryPatternType.SCHEMA_QUESTION))
        if any(p.search(text) for p in self._table_list_patterns):
            patterns.append(QueryPattern(pattern_type=QueryPatternType.TABLE_LIST))
        if any(p.search(text) for p in self._column_list_patterns):
            patterns.append(QueryPattern(pattern_type=QueryPatternType.COLUMN_LIST))
        if any(p.search(text) for p in self._table_count_patterns):
            patterns.append(QueryPattern(pattern_type=QueryPatternType.TABLE_COUNT))
        if any(p.search(text) for p in self._relationship_patterns):
            patterns.append(QueryPattern(pattern_type=QueryPatternType.RELATIONSHIPS))
        if self.is_count_request(text):
            patterns.append(
                QueryPattern(pattern_type=QueryPatternType.COUNT_REQUEST, confidence=0.8)
            )
        if self.is_comparison(text):
            patterns.append(QueryPattern(pattern_type=QueryPatternType.COMPARISON, confidence=0.8))
        return patterns

    def is_schema_question(self, query: str) -> bool:
        """Questions about database structure rather than its rows."""
        text = query.lower()
        if any(phrase in text for phrase in _SCHEMA_PHRASES):
            return True
        return "how many" in text and "tables" in text

    def is_count_request(self, query: str) -> bool:
        return any(p.search(query) for p in self._count_patterns)

    def is_comparison(self, query: str) -> bool:
        return any(p.search(query) for p in self._comparison_patterns)

    def is_clarification_prompt(self, text: str) -> bool:
        """Whether an agent message asked the user for more detail."""
        lower = text.lower()
        return any(trigger in lower for trigger in _CLARIFICATION_TRIGGERS)

    def mentioned_names(self, query: str, names: list[str]) -> list[str]:
        """Names (tables, columns) that appear in the query, in given order."""
        text = query.lower()
        return [name for name in names if name and name.lower() in text]
