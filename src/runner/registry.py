from __future__ import annotations

import logging
from typing import Iterator

from model.graph import InferenceModel
from policies.action_spec import ActionSpec
from runner.runner import InferenceRunner, InferenceRunnerCfg
from utils.device import InferenceDevice
from utils.errors import ConfigurationError

logger = logging.getLogger(__name__)


class RunnerRegistry:
    """
    Owns one InferenceRunner per (graph, device) pair.

    Create one registry per simulation and pass it to every DecisionPolicy
    that should share runners. Runners live until `dispose()`, which is also
    called when the registry is used as a context manager.
    """

    def __init__(self, cfg: InferenceRunnerCfg | None = None) -> None:
        self.cfg = cfg or InferenceRunnerCfg()
        self._runners: list[InferenceRunner] = []

    def __len__(self) -> int:
        return len(self._runners)

    def __iter__(self) -> Iterator[InferenceRunner]:
        return iter(self._runners)

    def __enter__(self) -> RunnerRegistry:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    @property
    def runners(self) -> tuple[InferenceRunner, ...]:
        return tuple(self._runners)

    def find(self, model: InferenceModel, device: InferenceDevice) -> InferenceRunner | None:
        for runner in self._runners:
            if runner.has_model(model, device):
                return runner
        return None

    def get_or_create(
        self,
        model: InferenceModel | None,
        device: InferenceDevice,
        action_spec: ActionSpec,
    ) -> InferenceRunner:
        if model is None:
            raise ConfigurationError("Cannot create an inference runner without a model.")

        device = InferenceDevice(device)
        runner = self.find(model, device)
        if runner is not None:
            return runner

        # Construction errors propagate before anything is stored.
        runner = InferenceRunner(model, action_spec, device=device, cfg=self.cfg)
        self._runners.append(runner)
        return runner

    def dispose(self) -> None:
        for runner in self._runners:
            runner.dispose()
        if self._runners:
            logger.info("Disposed %d inference runners", len(self._runners))
        self._runners.clear()
