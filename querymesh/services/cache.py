"""
Plan Cache

Remembers execution plans for repeated questions over the same candidate set.
The cache is shared across requests, so the default implementation is bounded
and lock-guarded.
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from collections.abc import Callable, Iterable

from querymesh.models.plan import ExecutionPlan

logger = logging.getLogger(__name__)


def plan_cache_key(query_text: str, candidate_ids: Iterable[str]) -> str:
    """Stable key for a question asked over a given set of candidates."""
    normalized = " ".join(query_text.lower().split())
    ids = ",".join(sorted(candidate_ids))
    return hashlib.sha256(f"{normalized}|{ids}".encode("utf-8")).hexdigest()


class PlanCache(ABC):
    """Lookup of previously computed execution plans."""

    @abstractmethod
    def get(self, key: str) -> ExecutionPlan | None:
        """Return the cached plan, or None on miss or expiry."""

    @abstractmethod
    def put(self, key: str, plan: ExecutionPlan) -> None:
        """Store a plan under ``key``."""


class LRUPlanCache(PlanCache):
    """Size-capped, least-recently-used plan cache with a time-to-live."""

    def __init__(
        self,
        max_size: int = 256,
        ttl_seconds: float = 600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, ExecutionPlan]] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> ExecutionPlan | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            stored_at, plan = entry
            if self.ttl_seconds and self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return plan.model_copy(deep=True)

    def put(self, key: str, plan: ExecutionPlan) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), plan.model_copy(deep=True))
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Evicted plan cache entry {evicted[:12]}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
