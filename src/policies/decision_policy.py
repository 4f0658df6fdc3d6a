from __future__ import annotations

from enum import IntEnum
from typing import Sequence

import torch

from model.graph import InferenceModel
from policies.action_spec import ActionSpec, SpaceType
from policies.buffers import ActionBuffers
from runner.registry import RunnerRegistry
from runner.runner import InferenceRunner
from storage.decision_queue import Observation
from utils.device import InferenceDevice
from utils.errors import ConfigurationError, ContractViolationError


class InferenceMode(IntEnum):
    """Which of the policy's runners serves a request."""

    POLICY = 0
    VALUE_ESTIMATE = 1
    COMBINED = 2


class DecisionPolicy:
    """
    Per-agent decision facade over up to three shared runners.
    Any of the three models may be omitted; selecting its mode is then a
    `ConfigurationError`.

    Usage per decision step: `request(...)` while the step collects agents,
    then `decide()` once every agent sharing the runner has requested.
    A mode passed to `request` applies to the next `decide()` only.
    """

    def __init__(
        self,
        registry: RunnerRegistry,
        action_spec: ActionSpec,
        model_policy: InferenceModel | None = None,
        model_value_estimate: InferenceModel | None = None,
        model_policy_and_value_estimate: InferenceModel | None = None,
        device: InferenceDevice = InferenceDevice.CPU,
    ) -> None:
        action_spec.check_not_hybrid()
        self.action_spec = action_spec
        self.space_type = action_spec.space_type

        models = {
            InferenceMode.POLICY: model_policy,
            InferenceMode.VALUE_ESTIMATE: model_value_estimate,
            InferenceMode.COMBINED: model_policy_and_value_estimate,
        }
        self._runners: dict[InferenceMode, InferenceRunner | None] = {
            mode: None if model is None else registry.get_or_create(model, device, action_spec)
            for mode, model in models.items()
        }

        self._episode_id: int | None = None
        # Mode reused by a `request` without an explicit mode.
        self._mode = InferenceMode.POLICY
        # Runner the next `decide` reads from.
        self._decide_mode = InferenceMode.POLICY

    @property
    def mode(self) -> InferenceMode:
        return self._mode

    def runner(self, mode: InferenceMode) -> InferenceRunner | None:
        return self._runners[InferenceMode(mode)]

    @staticmethod
    def _validate_mode(mode: InferenceMode | int) -> InferenceMode:
        if isinstance(mode, bool):
            raise ContractViolationError(f"Invalid inference mode: {mode!r}")
        try:
            return InferenceMode(mode)
        except ValueError:
            raise ContractViolationError(f"Invalid inference mode: {mode!r}") from None

    def _require_runner(self, mode: InferenceMode) -> InferenceRunner:
        runner = self._runners[mode]
        if runner is None:
            raise ConfigurationError(f"No model configured for inference mode {mode.name}.")
        return runner

    def request(
        self,
        observation: Observation,
        sensors: Sequence[torch.Tensor],
        mode: InferenceMode | int | None = None,
    ) -> None:
        """Queue this agent's observation on the runner for `mode`.

        Without `mode`, the most recently requested mode is used once and the
        stored mode falls back to POLICY.
        """
        selected = self._mode if mode is None else self._validate_mode(mode)
        runner = self._require_runner(selected)
        self._mode = InferenceMode.POLICY if mode is None else selected

        self._episode_id = int(observation.episode_id)
        runner.enqueue(observation, sensors)
        self._decide_mode = selected

    def decide(self) -> ActionBuffers:
        """Run the pending batch and return this agent's action.

        Episodes that completed in the requesting step have no cached action
        and get an empty result.
        """
        mode = self._decide_mode
        self._decide_mode = InferenceMode.POLICY

        runner = self._require_runner(mode)
        runner.run_batch()
        if self._episode_id is None:
            return ActionBuffers.empty()

        actions, value_estimate = runner.read(self._episode_id)
        if self.space_type == SpaceType.CONTINUOUS:
            return ActionBuffers.from_continuous_actions(actions, value_estimate)
        return ActionBuffers.from_discrete_actions(actions)
