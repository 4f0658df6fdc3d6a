from __future__ import annotations

import copy
import logging
from collections.abc import Mapping

import torch
import torch.nn as nn

from model.graph import InferenceModel
from utils.errors import InferenceOutputError

logger = logging.getLogger(__name__)


def _module_device(module: nn.Module) -> torch.device | None:
    param = next(module.parameters(), None)
    if param is None:
        param = next(module.buffers(), None)
    return None if param is None else param.device


class InferenceEngine:
    """
    Executes one inference graph on one torch device.

    The bound module is switched to eval mode. When the graph already lives on
    the target device no copy is made, so the caller's module itself is left
    in eval mode; call `.train()` on it before resuming training.
    """

    def __init__(self, model: InferenceModel, device: torch.device | str = "cpu") -> None:
        self.model = model
        self.device = torch.device(device)

        module = model.module
        current = _module_device(module)
        if current is not None and current != self.device:
            # Leave the caller's module where it is; other runners may share it.
            module = copy.deepcopy(module).to(self.device)
        self._module: nn.Module | None = module.eval()
        self._outputs: dict[str, torch.Tensor] = {}

    @property
    def is_disposed(self) -> bool:
        return self._module is None

    def execute(self, inputs: Mapping[str, torch.Tensor]) -> dict[str, torch.Tensor]:
        if self._module is None:
            raise RuntimeError(f"Inference engine for `{self.model.name}` has been disposed.")

        feed = {name: t.to(self.device) for name, t in inputs.items()}
        with torch.inference_mode():
            outputs = self._module(**feed)

        if not isinstance(outputs, Mapping):
            raise InferenceOutputError(
                f"Graph `{self.model.name}` must return a mapping of named outputs, "
                f"got {type(outputs).__name__}"
            )
        self._outputs = dict(outputs)
        return self._outputs

    def peek_output(self, name: str) -> torch.Tensor | None:
        """Output of the last execution, or None if the graph did not produce it."""
        return self._outputs.get(name)

    def dispose(self) -> None:
        if self._module is None:
            return
        self._module = None
        self._outputs = {}
        if self.device.type == "cuda":
            torch.cuda.empty_cache()
        logger.debug("Disposed inference engine for %s", self.model.name)
