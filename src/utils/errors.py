"""Error kinds raised by the inference stack."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Invalid graph, action spec or runner wiring. Not recoverable."""


class ContractViolationError(AssertionError):
    """Caller broke an input contract (mode value, sensor shapes)."""


class InferenceOutputError(RuntimeError):
    """A structurally required output is missing after graph execution."""
