"""Inference runner entry points."""

from .registry import RunnerRegistry
from .runner import InferenceRunner, InferenceRunnerCfg

__all__ = ["InferenceRunner", "InferenceRunnerCfg", "RunnerRegistry"]
