"""Score normalization shared by stage schemas."""

from typing import Any


def clamp_score(value: Any, default: float = 0.0) -> float:
    """Coerce a model-supplied score into [0, 1]."""
    try:
        score = float(value)
    except (TypeError, ValueError):
        return default
    if score != score:
        return default
    return min(1.0, max(0.0, score))
