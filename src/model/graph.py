from __future__ import annotations

import os
from collections.abc import Iterable

import torch
import torch.nn as nn

from model.base import BaseInferenceGraph
from model.tensor_names import (
    ACTION_OUTPUT,
    RECURRENT_IN,
    RECURRENT_OUT,
    VALUE_ESTIMATE_OUTPUT,
    VALUE_ESTIMATE_OUTPUT_OPTIMIZER,
)
from utils.errors import ConfigurationError


class InferenceModel:
    """
    Loadable inference-graph handle.

    Runner identity is object identity of this handle: two handles wrapping
    the same module are still distinct assets. The handle records the names
    the graph declares so the runner knows what to feed and what to fetch.
    """

    def __init__(
        self,
        module: nn.Module,
        *,
        output_names: Iterable[str],
        input_names: Iterable[str] = (),
        memory_size: int = 0,
        name: str | None = None,
    ) -> None:
        if not isinstance(module, nn.Module):
            raise ConfigurationError(f"`module` must be a torch.nn.Module, got {type(module).__name__}")
        self.module = module
        self.name = name or type(module).__name__
        self.output_names = tuple(str(n) for n in output_names)
        self.input_names = tuple(str(n) for n in input_names)
        self.memory_size = int(memory_size)

        if self.memory_size < 0:
            raise ConfigurationError(f"`memory_size` must be >= 0, got {self.memory_size}")
        if self.memory_size > 0 and RECURRENT_OUT not in self.output_names:
            raise ConfigurationError(
                f"Recurrent graph `{self.name}` must declare a `{RECURRENT_OUT}` output."
            )

    def __repr__(self) -> str:
        return f"InferenceModel(name={self.name!r}, outputs={list(self.output_names)})"

    @classmethod
    def from_graph(cls, graph: BaseInferenceGraph, name: str | None = None) -> InferenceModel:
        return cls(
            graph,
            output_names=graph.output_names,
            input_names=graph.input_names,
            memory_size=graph.memory_size,
            name=name,
        )

    @classmethod
    def load(
        cls,
        path: str,
        *,
        output_names: Iterable[str],
        input_names: Iterable[str] = (),
        memory_size: int = 0,
        name: str | None = None,
    ) -> InferenceModel:
        """Load a TorchScript graph from disk onto the CPU."""
        module = torch.jit.load(path, map_location="cpu")
        return cls(
            module,
            output_names=output_names,
            input_names=input_names,
            memory_size=memory_size,
            name=name or os.path.splitext(os.path.basename(path))[0],
        )

    @property
    def has_policy(self) -> bool:
        return ACTION_OUTPUT in self.output_names

    @property
    def has_value_estimate(self) -> bool:
        return VALUE_ESTIMATE_OUTPUT in self.output_names

    @property
    def has_value_estimate_optimizer(self) -> bool:
        return VALUE_ESTIMATE_OUTPUT_OPTIMIZER in self.output_names

    @property
    def is_recurrent(self) -> bool:
        return self.memory_size > 0

    def declares_input(self, name: str) -> bool:
        if name == RECURRENT_IN:
            return self.is_recurrent
        return name in self.input_names
