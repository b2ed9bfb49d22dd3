"""Token accounting for one request."""

import math

from pydantic import BaseModel, Field


def tokens_to_credits(tokens: int, tokens_per_credit: int = 1000) -> int:
    """Convert tokens to credits, rounding up to the next whole block."""
    if tokens_per_credit <= 0:
        raise ValueError("tokens_per_credit must be positive")
    if tokens <= 0:
        return 0
    return math.ceil(tokens / tokens_per_credit)


def rounded_tokens(tokens: int, tokens_per_credit: int = 1000) -> int:
    """Round a token count up to the billed block size."""
    return tokens_to_credits(tokens, tokens_per_credit) * tokens_per_credit


class LedgerEntry(BaseModel):
    stage: str
    tokens: int = Field(ge=0)


class TokenLedger(BaseModel):
    """Additive per-stage token counts."""

    entries: list[LedgerEntry] = Field(default_factory=list)

    def add(self, stage: str, tokens: int) -> None:
        self.entries.append(LedgerEntry(stage=stage, tokens=max(0, int(tokens))))

    @property
    def total(self) -> int:
        return sum(entry.tokens for entry in self.entries)

    def breakdown(self) -> dict[str, int]:
        """Tokens summed per stage, in first-seen order."""
        totals: dict[str, int] = {}
        for entry in self.entries:
            totals[entry.stage] = totals.get(entry.stage, 0) + entry.tokens
        return totals

    def credits(self, tokens_per_credit: int = 1000) -> int:
        return tokens_to_credits(self.total, tokens_per_credit)
