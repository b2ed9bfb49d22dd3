"""Request-scoped query models."""

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ConversationTurn(BaseModel):
    """Single turn in conversation history."""

    sender: Literal["user", "agent", "system"]
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


class Query(BaseModel):
    """
    A natural-language question plus the context it was asked in.

    History is consumed read-only and is never written back by the pipeline.
    """

    text: str = Field(..., min_length=1, description="User's natural language question")
    workspace_id: str = Field(..., description="Workspace that owns the data sources")
    agent_id: str | None = Field(None, description="Agent answering on behalf of the workspace")
    conversation_history: list[ConversationTurn] = Field(
        default_factory=list, description="Prior turns, oldest first"
    )

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "text": "How many donations came from Hyderabad?",
                "workspace_id": "ws_charity",
                "agent_id": "agent_ops",
                "conversation_history": [],
            }
        },
    )

    def recent_turns(self, count: int) -> list[ConversationTurn]:
        """Return the last ``count`` turns, oldest first."""
        if count <= 0:
            return []
        return list(self.conversation_history[-count:])

    def format_history(self, count: int) -> str:
        """Render the last ``count`` turns as ``sender: content`` lines."""
        return "\n".join(f"{turn.sender}: {turn.content}" for turn in self.recent_turns(count))
