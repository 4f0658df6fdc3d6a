"""Shared device and error definitions."""

from .device import InferenceDevice, resolve_device
from .errors import ConfigurationError, ContractViolationError, InferenceOutputError

__all__ = [
    "ConfigurationError",
    "ContractViolationError",
    "InferenceDevice",
    "InferenceOutputError",
    "resolve_device",
]
