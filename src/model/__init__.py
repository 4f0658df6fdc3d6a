"""Inference graph entry points."""

from .base import BaseInferenceGraph
from .dense import PolicyGraph, PolicyGraphCfg
from .engine import InferenceEngine
from .graph import InferenceModel

__all__ = ["BaseInferenceGraph", "InferenceEngine", "InferenceModel", "PolicyGraph", "PolicyGraphCfg"]
