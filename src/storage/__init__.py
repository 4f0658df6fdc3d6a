"""Per-agent request and cache storage."""

from .agent_cache import ActionCache, CachedDecision, RecurrentMemory
from .decision_queue import DecisionQueue, Observation, PendingRequest

__all__ = [
    "ActionCache",
    "CachedDecision",
    "DecisionQueue",
    "Observation",
    "PendingRequest",
    "RecurrentMemory",
]
