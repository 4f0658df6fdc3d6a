from __future__ import annotations

from typing import Sequence

import torch
from einops import rearrange

from policies.action_spec import ActionSpec, SpaceType
from storage.agent_cache import ActionCache, RecurrentMemory
from utils.errors import InferenceOutputError


def _as_rows(tensor: torch.Tensor, episode_ids: Sequence[int], name: str) -> torch.Tensor:
    """Flatten an output to [B, F] on the CPU and check it covers the batch."""
    if tensor.ndim == 1:
        tensor = rearrange(tensor, "b -> b 1")
    rows = rearrange(tensor.detach().to("cpu"), "b ... -> b (...)")
    if rows.shape[0] != len(episode_ids):
        raise InferenceOutputError(
            f"Output `{name}` has batch dim {rows.shape[0]}, expected {len(episode_ids)}."
        )
    return rows


class TensorApplier:
    """
    Decodes output tensors back into per-episode caches.

    Row i of each output is written to `episode_ids[i]`. Episodes without a
    live cache entry (completed this step) are skipped so they stay evicted.
    """

    def __init__(
        self,
        action_spec: ActionSpec,
        memories: RecurrentMemory,
        seed: int = 0,
        deterministic: bool = False,
    ) -> None:
        self.action_spec = action_spec
        self.memories = memories
        self.deterministic = bool(deterministic)
        self._generator = torch.Generator(device="cpu")
        self._generator.manual_seed(int(seed))

    def apply_actions(self, output: torch.Tensor, episode_ids: Sequence[int], cache: ActionCache) -> None:
        rows = _as_rows(output, episode_ids, "action").to(torch.float32)
        if self.action_spec.space_type == SpaceType.CONTINUOUS:
            actions = self._continuous_actions(rows)
        else:
            actions = self._discrete_actions(rows)

        for i, episode_id in enumerate(episode_ids):
            cache.set_action(episode_id, actions[i].clone())

    def apply_value_estimates(
        self,
        output: torch.Tensor,
        episode_ids: Sequence[int],
        cache: ActionCache,
    ) -> None:
        values = _as_rows(output, episode_ids, "value_estimate")[:, 0]
        for i, episode_id in enumerate(episode_ids):
            cache.set_value_estimate(episode_id, float(values[i].item()))

    def apply_memories(self, output: torch.Tensor, episode_ids: Sequence[int], cache: ActionCache) -> None:
        rows = _as_rows(output, episode_ids, "recurrent_out").to(torch.float32)
        if rows.shape[1] != self.memories.memory_size:
            raise InferenceOutputError(
                f"Output `recurrent_out` has width {rows.shape[1]}, expected {self.memories.memory_size}."
            )
        for i, episode_id in enumerate(episode_ids):
            if episode_id in cache:
                self.memories.update(episode_id, rows[i])

    def _continuous_actions(self, rows: torch.Tensor) -> torch.Tensor:
        expected = self.action_spec.num_continuous_actions
        if rows.shape[1] != expected:
            raise InferenceOutputError(f"Output `action` has width {rows.shape[1]}, expected {expected}.")
        return rows

    def _discrete_actions(self, logits: torch.Tensor) -> torch.Tensor:
        """Pick one index per branch from concatenated branch logits -> [B, num_branches]."""
        expected = self.action_spec.sum_of_discrete_branch_sizes
        if logits.shape[1] != expected:
            raise InferenceOutputError(f"Output `action` has width {logits.shape[1]}, expected {expected}.")

        picks = []
        for branch in torch.split(logits, list(self.action_spec.branch_sizes), dim=1):
            if self.deterministic:
                picks.append(branch.argmax(dim=1))
            else:
                probs = torch.softmax(branch, dim=1)
                picks.append(torch.multinomial(probs, 1, generator=self._generator)[:, 0])
        return torch.stack(picks, dim=1).to(torch.float32)
