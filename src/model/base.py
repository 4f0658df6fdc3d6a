from __future__ import annotations

from collections.abc import Mapping

import torch
import torch.nn as nn


class BaseInferenceGraph(nn.Module):
    """Base graph API consumed by the inference runner.

    A graph is called with its named input tensors as keyword arguments and
    returns a mapping of output name -> tensor whose first dim is the batch.
    """

    @property
    def input_names(self) -> tuple[str, ...]:
        raise NotImplementedError

    @property
    def output_names(self) -> tuple[str, ...]:
        raise NotImplementedError

    @property
    def memory_size(self) -> int:
        """Width of the recurrent state, 0 for feed-forward graphs."""
        return 0

    def forward(self, **inputs: torch.Tensor) -> Mapping[str, torch.Tensor]:
        del inputs
        raise NotImplementedError
