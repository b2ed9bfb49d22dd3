"""Cost sink for final token and credit totals."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class CostSink(ABC):
    """Receives the billed totals for one request."""

    @abstractmethod
    async def record(
        self,
        *,
        workspace_id: str,
        agent_id: str | None,
        tokens_used: int,
        tokens_rounded: int,
        credits: int,
        breakdown: dict[str, int],
    ) -> None:
        """Record usage for a finished request."""


class LoggingCostSink(CostSink):
    """Writes usage to the log instead of a billing ledger."""

    async def record(
        self,
        *,
        workspace_id: str,
        agent_id: str | None,
        tokens_used: int,
        tokens_rounded: int,
        credits: int,
        breakdown: dict[str, int],
    ) -> None:
        logger.info(
            f"Usage: {tokens_used} tokens ({credits} credits)",
            extra={
                "workspace_id": workspace_id,
                "agent_id": agent_id,
                "tokens_rounded": tokens_rounded,
                "breakdown": breakdown,
            },
        )
