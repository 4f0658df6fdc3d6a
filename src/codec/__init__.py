"""Tensor codec: batch encoding and per-episode decoding."""

from .allocator import TensorPool
from .applier import TensorApplier
from .generator import TensorGenerator
from .sensor_validator import SensorShapeValidator

__all__ = ["SensorShapeValidator", "TensorApplier", "TensorGenerator", "TensorPool"]
