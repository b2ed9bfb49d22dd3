"""Injected collaborators used by the pipeline."""

from querymesh.services.cache import LRUPlanCache, PlanCache, plan_cache_key
from querymesh.services.cost import CostSink, LoggingCostSink
from querymesh.services.encryption import CredentialError, FernetCredentialCipher
from querymesh.services.monitoring import LoggingQueryMonitor, QueryMonitor
from querymesh.services.registry import InMemorySourceRegistry, SourceRegistry

__all__ = [
    "CostSink",
    "CredentialError",
    "FernetCredentialCipher",
    "InMemorySourceRegistry",
    "LRUPlanCache",
    "LoggingCostSink",
    "LoggingQueryMonitor",
    "PlanCache",
    "QueryMonitor",
    "SourceRegistry",
    "plan_cache_key",
]
