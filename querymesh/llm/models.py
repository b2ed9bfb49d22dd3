"""
LLM Request and Response Models

Vendor-neutral shapes passed between stages and providers. ``metadata`` on a
request tags the call with the stage and prompt template that issued it.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field

FinishReason = Literal["stop", "length", "content_filter", "error"]


class LLMMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str = Field(..., min_length=1)


class LLMRequest(BaseModel):
    """One completion call. Unset sampling fields take the provider defaults."""

    messages: list[LLMMessage] = Field(..., min_length=1)
    temperature: float | None = Field(None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(None, gt=0)
    model: str | None = Field(None, description="Overrides the provider's model")
    json_mode: bool = Field(False, description="Ask for a single JSON object")
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Call tags such as stage and prompt; not sent to the vendor",
    )

    @property
    def stage(self) -> str:
        return self.metadata.get("stage", "-")

    @property
    def prompt(self) -> str | None:
        return self.metadata.get("prompt")


class LLMUsage(BaseModel):
    prompt_tokens: int = Field(..., ge=0)
    completion_tokens: int = Field(..., ge=0)
    total_tokens: int = Field(..., ge=0)


class LLMResponse(BaseModel):
    """Completion text plus the usage the pipeline bills against."""

    content: str
    model: str
    usage: LLMUsage
    finish_reason: FinishReason
    provider: str = Field(..., description="openai, anthropic, ...")
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def tokens(self) -> int:
        return self.usage.total_tokens


class Embedding(BaseModel):
    """Vector for a query or a source summary."""

    vector: list[float]
    tokens_used: int = Field(0, ge=0)
    model: str | None = None
