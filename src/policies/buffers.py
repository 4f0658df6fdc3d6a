from __future__ import annotations

from dataclasses import dataclass, field

import torch


def _empty_continuous() -> torch.Tensor:
    return torch.empty(0, dtype=torch.float32)


def _empty_discrete() -> torch.Tensor:
    return torch.empty(0, dtype=torch.long)


@dataclass(frozen=True, slots=True, eq=False)
class ActionBuffers:
    """
    Decision returned to one agent.

    Each `DecisionPolicy.decide()` builds a new instance that owns its
    tensors, so holding on to a result across decision steps is safe.
    """

    continuous_actions: torch.Tensor = field(default_factory=_empty_continuous)
    discrete_actions: torch.Tensor = field(default_factory=_empty_discrete)
    value_estimate: float = 0.0

    @classmethod
    def empty(cls) -> ActionBuffers:
        return cls()

    @classmethod
    def from_continuous_actions(
        cls,
        actions: torch.Tensor | None,
        value_estimate: float = 0.0,
    ) -> ActionBuffers:
        if actions is None:
            return cls(value_estimate=float(value_estimate))
        continuous = actions.detach().to(device="cpu", dtype=torch.float32).reshape(-1).clone()
        return cls(continuous_actions=continuous, value_estimate=float(value_estimate))

    @classmethod
    def from_discrete_actions(cls, actions: torch.Tensor | None) -> ActionBuffers:
        """Branch indices arrive as floats from the decoder; cast them to ints."""
        if actions is None:
            return cls()
        discrete = actions.detach().to("cpu").reshape(-1).round().to(torch.long)
        return cls(discrete_actions=discrete)

    @property
    def is_empty(self) -> bool:
        return self.continuous_actions.numel() == 0 and self.discrete_actions.numel() == 0
