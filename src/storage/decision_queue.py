from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, Sequence

import torch


@dataclass(slots=True)
class Observation:
    """Per-agent snapshot handed in with a decision request.

    Only `episode_id`, `done` and `action_mask` are interpreted by the
    inference stack. Everything else is passthrough telemetry.
    """

    episode_id: int
    done: bool = False
    reward: float = 0.0
    max_step_reached: bool = False
    action_mask: Sequence[bool] | None = None
    telemetry: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class PendingRequest:
    """One queued decision request: the observation plus its sensor readings."""

    observation: Observation
    sensors: list[torch.Tensor]

    @property
    def episode_id(self) -> int:
        return self.observation.episode_id


class DecisionQueue:
    """
    Ordered pending requests plus the parallel list of their episode ids.

    Slot i of `episode_ids` names the agent whose request sits at slot i of
    `requests`, and therefore the agent owning row i of every batch tensor
    encoded from this queue. Both lists only grow through `append` and only
    shrink through `clear`, so they never drift apart.
    """

    def __init__(self) -> None:
        self._requests: list[PendingRequest] = []
        self._episode_ids: list[int] = []

    def __len__(self) -> int:
        return len(self._requests)

    def __iter__(self) -> Iterator[PendingRequest]:
        return iter(self._requests)

    def __getitem__(self, index: int) -> PendingRequest:
        return self._requests[index]

    @property
    def requests(self) -> list[PendingRequest]:
        return self._requests

    @property
    def episode_ids(self) -> list[int]:
        return self._episode_ids

    def append(self, observation: Observation, sensors: Sequence[torch.Tensor]) -> PendingRequest:
        request = PendingRequest(observation=observation, sensors=list(sensors))
        self._requests.append(request)
        # Enqueue order is the batch order; decoders map row i -> episode_ids[i].
        self._episode_ids.append(int(observation.episode_id))
        return request

    def clear(self) -> None:
        self._requests.clear()
        self._episode_ids.clear()
