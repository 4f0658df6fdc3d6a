from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

import torch


@dataclass(slots=True)
class CachedDecision:
    """Last decoded action and value estimate for one episode."""

    action: torch.Tensor | None = None
    value_estimate: float = 0.0


class ActionCache:
    """
    Episode id -> last action + last value estimate.

    Entries are created lazily on the first request of an episode and are
    dropped by `evict` as soon as the episode reports completion. A completed
    episode is never readable: `get` returns the defaults for it.
    """

    def __init__(self) -> None:
        self._entries: dict[int, CachedDecision] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, episode_id: object) -> bool:
        return episode_id in self._entries

    def __iter__(self) -> Iterator[int]:
        return iter(self._entries)

    def ensure(self, episode_id: int) -> CachedDecision:
        entry = self._entries.get(episode_id)
        if entry is None:
            entry = CachedDecision()
            self._entries[episode_id] = entry
        return entry

    def get(self, episode_id: int) -> tuple[torch.Tensor | None, float]:
        entry = self._entries.get(episode_id)
        if entry is None:
            return None, 0.0
        return entry.action, entry.value_estimate

    def set_action(self, episode_id: int, action: torch.Tensor | None) -> bool:
        """Overwrite the action of a live entry. Returns False for unknown ids."""
        entry = self._entries.get(episode_id)
        if entry is None:
            return False
        entry.action = action
        return True

    def set_value_estimate(self, episode_id: int, value: float) -> bool:
        """Overwrite the value estimate of a live entry. Returns False for unknown ids."""
        entry = self._entries.get(episode_id)
        if entry is None:
            return False
        entry.value_estimate = float(value)
        return True

    def evict(self, episode_id: int) -> None:
        self._entries.pop(episode_id, None)

    def clear(self) -> None:
        self._entries.clear()


class RecurrentMemory:
    """Episode id -> hidden-state vector [memory_size] carried across steps."""

    def __init__(self, memory_size: int) -> None:
        if memory_size < 0:
            raise ValueError(f"`memory_size` must be >= 0, got {memory_size}")
        self.memory_size = int(memory_size)
        self._states: dict[int, torch.Tensor] = {}

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, episode_id: object) -> bool:
        return episode_id in self._states

    def get(self, episode_id: int) -> torch.Tensor | None:
        return self._states.get(episode_id)

    def get_or_zeros(
        self,
        episode_id: int,
        device: torch.device | str = "cpu",
        dtype: torch.dtype = torch.float32,
    ) -> torch.Tensor:
        state = self._states.get(episode_id)
        if state is None or state.shape[0] != self.memory_size:
            return torch.zeros(self.memory_size, device=device, dtype=dtype)
        return state.to(device=device, dtype=dtype)

    def update(self, episode_id: int, state: torch.Tensor) -> None:
        if state.ndim != 1 or state.shape[0] != self.memory_size:
            raise ValueError(
                f"Expected memory shape [{self.memory_size}], got {tuple(state.shape)}"
            )
        # clone() avoids retaining a view into the batch output tensor
        self._states[episode_id] = state.detach().clone()

    def evict(self, episode_id: int) -> None:
        self._states.pop(episode_id, None)

    def clear(self) -> None:
        self._states.clear()
