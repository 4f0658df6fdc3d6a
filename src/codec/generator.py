from __future__ import annotations

from typing import Sequence

import torch

from codec.allocator import TensorPool
from model.graph import InferenceModel
from model.tensor_names import ACTION_MASK, RECURRENT_IN, observation_name
from policies.action_spec import ActionSpec
from storage.agent_cache import RecurrentMemory
from storage.decision_queue import DecisionQueue
from utils.errors import ContractViolationError


class TensorGenerator:
    """
    Encodes a decision queue into the graph's named batch tensors.

    Row i of every generated tensor belongs to `queue.episode_ids[i]`.
    """

    def __init__(
        self,
        model: InferenceModel,
        action_spec: ActionSpec,
        pool: TensorPool,
        memories: RecurrentMemory,
    ) -> None:
        self.model = model
        self.action_spec = action_spec
        self.pool = pool
        self.memories = memories
        self._obs_shapes: list[tuple[int, ...]] | None = None

    def initialize_observations(self, sensors: Sequence[torch.Tensor]) -> None:
        """Fix the per-sensor input shapes from one agent's readings."""
        self._obs_shapes = [tuple(s.shape) for s in sensors]

    def generate(self, queue: DecisionQueue) -> dict[str, torch.Tensor]:
        if self._obs_shapes is None:
            raise RuntimeError("`initialize_observations` must be called before `generate`.")

        batch_size = len(queue)
        inputs: dict[str, torch.Tensor] = {}

        for k, shape in enumerate(self._obs_shapes):
            name = observation_name(k)
            buf = self.pool.alloc(name, batch_size, shape)
            for i, request in enumerate(queue):
                sensor = request.sensors[k]
                if tuple(sensor.shape) != shape:
                    # copy_ would broadcast a smaller reading into the row.
                    raise ContractViolationError(
                        f"Sensor {k} of episode {request.episode_id} must have shape {shape}, "
                        f"got {tuple(sensor.shape)}."
                    )
                buf[i].copy_(sensor)
            inputs[name] = buf

        if self.model.is_recurrent:
            buf = self.pool.alloc(RECURRENT_IN, batch_size, (self.memories.memory_size,))
            for i, episode_id in enumerate(queue.episode_ids):
                buf[i].copy_(self.memories.get_or_zeros(episode_id))
            inputs[RECURRENT_IN] = buf

        if self.model.declares_input(ACTION_MASK) and self.action_spec.num_discrete_actions > 0:
            inputs[ACTION_MASK] = self._generate_action_masks(queue, batch_size)

        return inputs

    def _generate_action_masks(self, queue: DecisionQueue, batch_size: int) -> torch.Tensor:
        width = self.action_spec.sum_of_discrete_branch_sizes
        buf = self.pool.alloc(ACTION_MASK, batch_size, (width,))
        buf.fill_(1.0)
        for i, request in enumerate(queue):
            mask = request.observation.action_mask
            if mask is None:
                continue
            mask_t = torch.as_tensor(mask, dtype=torch.float32)
            if mask_t.shape != (width,):
                raise ContractViolationError(
                    f"Action mask for episode {request.episode_id} must have shape ({width},), "
                    f"got {tuple(mask_t.shape)}."
                )
            buf[i].copy_(mask_t)
        return buf
