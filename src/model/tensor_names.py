"""Tensor names shared between graphs and the tensor codec."""

from __future__ import annotations

OBSERVATION_PREFIX = "obs_"
RECURRENT_IN = "recurrent_in"
ACTION_MASK = "action_masks"

ACTION_OUTPUT = "action"
VALUE_ESTIMATE_OUTPUT = "value_estimate"
VALUE_ESTIMATE_OUTPUT_OPTIMIZER = "optimizer/value_estimate"
RECURRENT_OUT = "recurrent_out"

VALUE_ESTIMATE_OUTPUTS = (VALUE_ESTIMATE_OUTPUT, VALUE_ESTIMATE_OUTPUT_OPTIMIZER)


def observation_name(index: int) -> str:
    return f"{OBSERVATION_PREFIX}{index}"
