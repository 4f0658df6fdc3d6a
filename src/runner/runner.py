from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Sequence

import torch
from torch.profiler import record_function
from torch.utils.tensorboard import SummaryWriter as TensorboardSummaryWriter

from codec.allocator import TensorPool
from codec.applier import TensorApplier
from codec.generator import TensorGenerator
from codec.sensor_validator import SensorShapeValidator
from model.engine import InferenceEngine
from model.graph import InferenceModel
from model.tensor_names import (
    ACTION_OUTPUT,
    RECURRENT_OUT,
    VALUE_ESTIMATE_OUTPUT,
    VALUE_ESTIMATE_OUTPUT_OPTIMIZER,
    VALUE_ESTIMATE_OUTPUTS,
)
from policies.action_spec import ActionSpec
from storage.agent_cache import ActionCache, RecurrentMemory
from storage.decision_queue import DecisionQueue, Observation
from utils.device import InferenceDevice, resolve_device
from utils.errors import ConfigurationError, InferenceOutputError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class InferenceRunnerCfg:
    """Runner-only config, shared by every runner a registry builds."""

    seed: int = 0
    deterministic: bool = False
    log_dir: str | None = None


class InferenceRunner:
    """
    Batches decision requests for one graph on one device.

    Per decision step: every agent calls `enqueue`, then one `run_batch`
    executes the graph over the whole queue, then agents `read` their cached
    action/value. Batch row i always belongs to the i-th enqueued episode id.
    """

    def __init__(
        self,
        model: InferenceModel,
        action_spec: ActionSpec,
        device: InferenceDevice = InferenceDevice.CPU,
        cfg: InferenceRunnerCfg | None = None,
    ) -> None:
        if not isinstance(model, InferenceModel):
            raise ConfigurationError(
                f"`model` must be an InferenceModel, got {type(model).__name__}"
            )

        self.model = model
        self.device = InferenceDevice(device)
        self.cfg = cfg or InferenceRunnerCfg()

        self.has_policy = model.has_policy
        self.has_value_estimate = model.has_value_estimate
        self.has_value_estimate_optimizer = model.has_value_estimate_optimizer
        if not (self.has_policy or self.has_value_estimate or self.has_value_estimate_optimizer):
            raise ConfigurationError(
                f"Graph `{model.name}` declares neither `{ACTION_OUTPUT}` nor a value estimate output."
            )

        self._queue = DecisionQueue()
        self._actions = ActionCache()
        self._memories = RecurrentMemory(model.memory_size)
        self._validator = SensorShapeValidator()

        self._pool = TensorPool()
        self._engine: InferenceEngine | None = InferenceEngine(model, resolve_device(self.device))
        self._generator = TensorGenerator(model, action_spec, self._pool, self._memories)
        self._applier = TensorApplier(
            action_spec,
            self._memories,
            seed=self.cfg.seed,
            deterministic=self.cfg.deterministic,
        )

        self._observations_initialized = False
        self._fault: InferenceOutputError | None = None
        self.writer: TensorboardSummaryWriter | None = None
        self.num_batches = 0

        logger.info("Created inference runner for %s on %s", model.name, self.device.name)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def output_names(self) -> tuple[str, ...]:
        names = []
        if self.has_policy:
            names.append(ACTION_OUTPUT)
        if self.has_value_estimate:
            names.append(VALUE_ESTIMATE_OUTPUT)
        if self.has_value_estimate_optimizer:
            names.append(VALUE_ESTIMATE_OUTPUT_OPTIMIZER)
        if self.model.is_recurrent:
            names.append(RECURRENT_OUT)
        return tuple(names)

    @property
    def memory_size(self) -> int:
        return self._memories.memory_size

    @property
    def pending(self) -> int:
        return len(self._queue)

    @property
    def queued_episode_ids(self) -> list[int]:
        return list(self._queue.episode_ids)

    @property
    def action_cache(self) -> ActionCache:
        return self._actions

    @property
    def recurrent_memory(self) -> RecurrentMemory:
        return self._memories

    @property
    def is_disposed(self) -> bool:
        return self._engine is None

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------
    def enqueue(self, observation: Observation, sensors: Sequence[torch.Tensor]) -> None:
        sensors = [torch.as_tensor(s) for s in sensors]
        self._validator.validate(sensors)

        self._queue.append(observation, sensors)

        episode_id = int(observation.episode_id)
        self._actions.ensure(episode_id)
        if observation.done:
            # No action may be taken after the episode ends, even if this id
            # is already queued for the current step.
            self._actions.evict(episode_id)
            self._memories.evict(episode_id)

    def run_batch(self) -> None:
        batch_size = len(self._queue)
        if batch_size == 0:
            return

        try:
            if self._engine is None:
                raise RuntimeError(f"Runner for `{self.model.name}` has been disposed.")
            if self._fault is not None:
                self._fail_batch(self._queue.episode_ids, str(self._fault))

            if not self._observations_initialized:
                # Any queued agent will do; all share the validated sensor shapes.
                self._generator.initialize_observations(self._queue[0].sensors)
                self._observations_initialized = True

            start = time.perf_counter()
            self._decide_batch(self._engine, batch_size)
            self._log_batch(batch_size, (time.perf_counter() - start) * 1000.0)
        finally:
            self._queue.clear()

    def _decide_batch(self, engine: InferenceEngine, batch_size: int) -> None:
        name = self.model.name
        episode_ids = self._queue.episode_ids

        with record_function(f"{name}.GenerateTensors"):
            inputs = self._generator.generate(self._queue)

        with record_function(f"{name}.ExecuteGraph"):
            try:
                engine.execute(inputs)
            except InferenceOutputError as exc:
                self._fail_batch(episode_ids, str(exc))

        with record_function(f"{name}.FetchOutputs"):
            action = engine.peek_output(ACTION_OUTPUT) if self.has_policy else None
            value = self._fetch_value_estimate(engine)
            memory = engine.peek_output(RECURRENT_OUT) if self.model.is_recurrent else None

        if self.has_policy and action is None:
            self._fail_batch(episode_ids, f"Could not find output `{ACTION_OUTPUT}` in graph `{name}`.")
        if self.model.is_recurrent and memory is None:
            self._fail_batch(episode_ids, f"Could not find output `{RECURRENT_OUT}` in graph `{name}`.")

        with record_function(f"{name}.ApplyTensors"):
            try:
                if action is not None:
                    self._applier.apply_actions(action, episode_ids, self._actions)
                if value is not None:
                    self._applier.apply_value_estimates(value, episode_ids, self._actions)
                if memory is not None:
                    self._applier.apply_memories(memory, episode_ids, self._actions)
            except InferenceOutputError as exc:
                self._fail_batch(episode_ids, str(exc))

        logger.debug("Ran batch of %d for %s", batch_size, name)

    def _fetch_value_estimate(self, engine: InferenceEngine) -> torch.Tensor | None:
        declared = [n for n in VALUE_ESTIMATE_OUTPUTS if n in self.model.output_names]
        for output_name in declared:
            value = engine.peek_output(output_name)
            if value is not None:
                return value
        if declared:
            logger.warning("Graph %s declares a value estimate but did not produce one.", self.model.name)
        return None

    def _fail_batch(self, episode_ids: Sequence[int], message: str) -> None:
        """Latch a fatal output error; the batch's agents get no action this step."""
        for episode_id in episode_ids:
            self._actions.set_action(episode_id, None)
            self._actions.set_value_estimate(episode_id, 0.0)
        self._fault = InferenceOutputError(message)
        logger.error(message)
        raise self._fault

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------
    def read(self, episode_id: int) -> tuple[torch.Tensor | None, float]:
        """Cached action and value estimate; `(None, 0.0)` for unknown or completed episodes."""
        return self._actions.get(int(episode_id))

    def has_model(self, model: InferenceModel, device: InferenceDevice) -> bool:
        return self.model is model and self.device == device

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------
    def _ensure_writer(self) -> None:
        if self.cfg.log_dir is None or self.writer is not None:
            return
        os.makedirs(self.cfg.log_dir, exist_ok=True)
        self.writer = TensorboardSummaryWriter(log_dir=self.cfg.log_dir, flush_secs=10)

    def _log_batch(self, batch_size: int, latency_ms: float) -> None:
        self.num_batches += 1
        self._ensure_writer()
        if self.writer is None:
            return
        tag = f"Inference/{self.model.name}"
        self.writer.add_scalar(f"{tag}/batch_size", batch_size, self.num_batches)
        self.writer.add_scalar(f"{tag}/latency_ms", latency_ms, self.num_batches)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------
    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            logger.info("Disposed inference runner for %s on %s", self.model.name, self.device.name)
        self._pool.reset()
        self._queue.clear()
        if self.writer is not None:
            self.writer.close()
            self.writer = None
