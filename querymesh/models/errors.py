"""
Pipeline Error Taxonomy

Every error raised inside a stage derives from StageError. Terminal errors end
the request with a fixed, user-facing message chosen by the orchestrator;
per-source errors never leave the coordinator that produced them and only
show up as ``error_kind`` on the source's result.
"""

from typing import Any, Literal


class StageError(Exception):
    """
    Custom exception for stage execution errors.

    Attributes:
        stage: Name of the stage that raised the error
        message: Error description
        recoverable: Whether the stage can be retried
        context: Additional context for debugging
    """

    def __init__(
        self,
        stage: str,
        message: str,
        recoverable: bool = True,
        context: dict[str, Any] | None = None,
    ):
        self.stage = stage
        self.message = message
        self.recoverable = recoverable
        self.context = context or {}
        super().__init__(f"[{stage}] {message}")

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging."""
        return {
            "stage": self.stage,
            "message": self.message,
            "recoverable": self.recoverable,
            "context": self.context,
            "type": self.__class__.__name__,
        }


class SafetyBlocked(StageError):
    """The request tripped the content-safety gate."""

    def __init__(self, stage: str, message: str, context: dict[str, Any] | None = None):
        super().__init__(stage, message, recoverable=False, context=context)


class ValidationRejected(StageError):
    """The question is off-topic or too vague to act on."""

    def __init__(
        self,
        stage: str,
        reason: Literal["irrelevant", "ambiguous"],
        message: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        self.reason = reason
        super().__init__(
            stage,
            message or f"Query rejected as {reason}",
            recoverable=False,
            context=context,
        )


class NoSourcesAvailable(StageError):
    """No usable data source exists for the workspace."""

    def __init__(self, stage: str, message: str, context: dict[str, Any] | None = None):
        super().__init__(stage, message, recoverable=False, context=context)


class SchemaUnavailable(StageError):
    """A database source has no captured schema to generate SQL against."""

    def __init__(self, stage: str, message: str, context: dict[str, Any] | None = None):
        super().__init__(stage, message, recoverable=False, context=context)


class SourceExecutionFailed(StageError):
    """A single source could not be executed."""

    def __init__(
        self,
        stage: str,
        message: str,
        error_kind: str = "execution_failed",
        context: dict[str, Any] | None = None,
    ):
        self.error_kind = error_kind
        super().__init__(stage, message, recoverable=False, context=context)


class SynthesisFailed(StageError):
    """No answer could be produced from the executed sources."""

    def __init__(self, stage: str, message: str, context: dict[str, Any] | None = None):
        super().__init__(stage, message, recoverable=False, context=context)


class LLMCallFailed(StageError):
    """Error during an LLM call (usually recoverable with retry)."""

    def __init__(self, stage: str, message: str, context: dict[str, Any] | None = None):
        super().__init__(stage, message, recoverable=True, context=context)


class MalformedModelOutput(StageError):
    """Model output did not parse or did not match the stage's schema."""

    def __init__(self, stage: str, message: str, context: dict[str, Any] | None = None):
        super().__init__(stage, message, recoverable=False, context=context)
