from __future__ import annotations

from typing import Sequence

import torch

from utils.errors import ContractViolationError


class SensorShapeValidator:
    """All agents sharing a runner must report the same sensor shapes."""

    def __init__(self) -> None:
        self._shapes: list[tuple[int, ...]] | None = None

    @property
    def shapes(self) -> list[tuple[int, ...]] | None:
        return None if self._shapes is None else list(self._shapes)

    def validate(self, sensors: Sequence[torch.Tensor]) -> None:
        """Record the shapes on first use, then require every later call to match."""
        shapes = [tuple(s.shape) for s in sensors]
        if self._shapes is None:
            self._shapes = shapes
            return

        if len(shapes) != len(self._shapes):
            raise ContractViolationError(
                f"Number of sensors must match: expected {len(self._shapes)}, got {len(shapes)}."
            )
        for i, (expected, actual) in enumerate(zip(self._shapes, shapes)):
            if expected != actual:
                raise ContractViolationError(
                    f"Sensor {i} shape must match: expected {expected}, got {actual}."
                )
