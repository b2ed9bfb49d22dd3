"""
Pydantic models for requests, sources, plans, results, and the response.
"""

from querymesh.models.answer import SourceAttribution, SynthesizedAnswer
from querymesh.models.errors import (
    LLMCallFailed,
    MalformedModelOutput,
    NoSourcesAvailable,
    SafetyBlocked,
    SchemaUnavailable,
    SourceExecutionFailed,
    StageError,
    SynthesisFailed,
    ValidationRejected,
)
from querymesh.models.ledger import TokenLedger, rounded_tokens, tokens_to_credits
from querymesh.models.plan import ExecutionPlan, RankedSource
from querymesh.models.query import ConversationTurn, Query
from querymesh.models.response import (
    Explainability,
    ResponseEnvelope,
    ResponseMetadata,
    VisualizationPayload,
)
from querymesh.models.results import (
    ApiResult,
    DatabaseResult,
    SourceExecutionResult,
    failed_result,
)
from querymesh.models.sources import (
    DataSourceCandidate,
    RegisteredSource,
    SchemaColumn,
    SchemaSnapshot,
    SchemaTable,
    SourceSummary,
)
from querymesh.models.stages import (
    DiscoveryResult,
    FollowUpResult,
    GreetingResult,
    RankingResult,
    SafetyResult,
    SchemaAnswerResult,
    SynthesisResult,
    ValidationResult,
    VisualizationResult,
)
from querymesh.models.visualization import ChartEncoding, ChartSpec, VisualizationDecision

__all__ = [
    "ApiResult",
    "ChartEncoding",
    "ChartSpec",
    "ConversationTurn",
    "DataSourceCandidate",
    "DatabaseResult",
    "DiscoveryResult",
    "ExecutionPlan",
    "Explainability",
    "FollowUpResult",
    "GreetingResult",
    "LLMCallFailed",
    "MalformedModelOutput",
    "NoSourcesAvailable",
    "Query",
    "RankedSource",
    "RankingResult",
    "RegisteredSource",
    "ResponseEnvelope",
    "ResponseMetadata",
    "SafetyBlocked",
    "SafetyResult",
    "SchemaAnswerResult",
    "SchemaColumn",
    "SchemaSnapshot",
    "SchemaTable",
    "SchemaUnavailable",
    "SourceAttribution",
    "SourceExecutionFailed",
    "SourceExecutionResult",
    "SourceSummary",
    "StageError",
    "SynthesisFailed",
    "SynthesisResult",
    "SynthesizedAnswer",
    "TokenLedger",
    "ValidationRejected",
    "ValidationResult",
    "VisualizationDecision",
    "VisualizationPayload",
    "VisualizationResult",
    "failed_result",
    "rounded_tokens",
    "tokens_to_credits",
]
