"""Decision policy entry points."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .action_spec import ActionSpec, SpaceType
from .buffers import ActionBuffers

if TYPE_CHECKING:
    from .decision_policy import DecisionPolicy, InferenceMode

__all__ = ["ActionBuffers", "ActionSpec", "DecisionPolicy", "InferenceMode", "SpaceType"]


def __getattr__(name: str) -> Any:
    # Loaded lazily: the policy imports the runner, which needs ActionSpec from here.
    if name in ("DecisionPolicy", "InferenceMode"):
        from . import decision_policy

        return getattr(decision_policy, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
