"""Query outcome monitoring."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections import Counter

logger = logging.getLogger(__name__)


class QueryMonitor(ABC):
    """Receives one event per finished query."""

    @abstractmethod
    async def record_query(
        self,
        *,
        workspace_id: str,
        query_text: str,
        status: str,
        succeeded: bool,
        latency_ms: float,
        sources_used: list[str],
    ) -> None:
        """Record that a query finished."""


class LoggingQueryMonitor(QueryMonitor):
    """Logs query outcomes and keeps running per-status counts."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts: Counter[str] = Counter()

    async def record_query(
        self,
        *,
        workspace_id: str,
        query_text: str,
        status: str,
        succeeded: bool,
        latency_ms: float,
        sources_used: list[str],
    ) -> None:
        with self._lock:
            self._counts[status] += 1
        logger.info(
            f"Query finished with status {status}",
            extra={
                "workspace_id": workspace_id,
                "succeeded": succeeded,
                "latency_ms": round(latency_ms, 2),
                "sources_used": sources_used,
            },
        )

    def counts(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counts)
