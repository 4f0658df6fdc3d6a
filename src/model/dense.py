from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

import torch
import torch.nn as nn
from einops import rearrange

from model.base import BaseInferenceGraph
from model.tensor_names import (
    ACTION_MASK,
    ACTION_OUTPUT,
    RECURRENT_IN,
    RECURRENT_OUT,
    VALUE_ESTIMATE_OUTPUT,
    VALUE_ESTIMATE_OUTPUT_OPTIMIZER,
    observation_name,
)


@dataclass(slots=True)
class PolicyGraphCfg:
    """
    Actor/critic graph config.

    `obs_sizes` are the flattened sizes of each sensor, in sensor order.
    `action_size` is the continuous action count, or the sum of discrete
    branch sizes when the graph emits branch logits.
    """

    obs_sizes: tuple[int, ...]
    action_size: int
    hidden_dims: tuple[int, ...] = (64, 64)
    activation: str = "elu"
    memory_size: int = 0
    policy_head: bool = True
    value_head: Literal["none", "direct", "optimizer"] = "none"
    use_action_masks: bool = False


class PolicyGraph(BaseInferenceGraph):
    """
    Feed-forward (optionally GRU-recurrent) actor/critic over sensor inputs.

    Inputs:
      - obs_k          [B, *sensor_k_shape], flattened per sample
      - recurrent_in   [B, memory_size]      (memory_size > 0)
      - action_masks   [B, action_size]      (use_action_masks)

    Outputs:
      - action                   [B, action_size]   (policy_head)
      - value_estimate           [B, 1]             (value_head == "direct")
      - optimizer/value_estimate [B, 1]             (value_head == "optimizer")
      - recurrent_out            [B, memory_size]   (memory_size > 0)
    """

    def __init__(self, cfg: PolicyGraphCfg):
        super().__init__()
        self.cfg = cfg

        if len(cfg.obs_sizes) == 0:
            raise ValueError("`obs_sizes` must be non-empty.")
        if any(int(s) <= 0 for s in cfg.obs_sizes):
            raise ValueError(f"Observation sizes must be positive, got {cfg.obs_sizes}")
        if cfg.action_size <= 0 and cfg.policy_head:
            raise ValueError(f"`action_size` must be > 0, got {cfg.action_size}")
        if cfg.value_head not in ("none", "direct", "optimizer"):
            raise ValueError(f"Invalid value head: {cfg.value_head}")
        if not cfg.policy_head and cfg.value_head == "none":
            raise ValueError("Graph needs a policy head, a value head, or both.")

        self.encoder = self._build_encoder(cfg)
        latent_dim = int(cfg.hidden_dims[-1])

        self.memory: nn.GRUCell | None = None
        if cfg.memory_size > 0:
            self.memory = nn.GRUCell(latent_dim, cfg.memory_size)
            latent_dim = cfg.memory_size

        self.actor = nn.Linear(latent_dim, cfg.action_size) if cfg.policy_head else None
        self.critic = nn.Linear(latent_dim, 1) if cfg.value_head != "none" else None

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    def _build_encoder(self, cfg: PolicyGraphCfg) -> nn.Module:
        hidden_dims = tuple(int(h) for h in cfg.hidden_dims)
        if len(hidden_dims) == 0:
            raise ValueError("`hidden_dims` must be non-empty.")

        layers: list[nn.Module] = []
        in_dim = sum(int(s) for s in cfg.obs_sizes)
        act = get_activation(cfg.activation)

        for h in hidden_dims:
            if h <= 0:
                raise ValueError(f"Hidden dims must be positive, got {hidden_dims}")
            layers.append(nn.Linear(in_dim, h))
            layers.append(act.__class__())  # fresh instance per layer
            in_dim = h

        return nn.Sequential(*layers)

    # ------------------------------------------------------------------
    # Graph API
    # ------------------------------------------------------------------
    @property
    def input_names(self) -> tuple[str, ...]:
        names = [observation_name(i) for i in range(len(self.cfg.obs_sizes))]
        if self.cfg.memory_size > 0:
            names.append(RECURRENT_IN)
        if self.cfg.use_action_masks:
            names.append(ACTION_MASK)
        return tuple(names)

    @property
    def output_names(self) -> tuple[str, ...]:
        names = []
        if self.cfg.policy_head:
            names.append(ACTION_OUTPUT)
        if self.cfg.value_head == "direct":
            names.append(VALUE_ESTIMATE_OUTPUT)
        elif self.cfg.value_head == "optimizer":
            names.append(VALUE_ESTIMATE_OUTPUT_OPTIMIZER)
        if self.cfg.memory_size > 0:
            names.append(RECURRENT_OUT)
        return tuple(names)

    @property
    def memory_size(self) -> int:
        return int(self.cfg.memory_size)

    def forward(self, **inputs: torch.Tensor) -> dict[str, torch.Tensor]:
        obs = [
            rearrange(inputs[observation_name(i)], "b ... -> b (...)")
            for i in range(len(self.cfg.obs_sizes))
        ]
        latent = self.encoder(torch.cat(obs, dim=-1))

        outputs: dict[str, torch.Tensor] = {}
        if self.memory is not None:
            latent = self.memory(latent, inputs[RECURRENT_IN])
            outputs[RECURRENT_OUT] = latent

        if self.actor is not None:
            action = self.actor(latent)
            mask = inputs.get(ACTION_MASK)
            if mask is not None:
                action = action.masked_fill(~mask.to(torch.bool), -1e8)
            outputs[ACTION_OUTPUT] = action

        if self.critic is not None:
            name = VALUE_ESTIMATE_OUTPUT if self.cfg.value_head == "direct" else VALUE_ESTIMATE_OUTPUT_OPTIMIZER
            outputs[name] = self.critic(latent)

        return outputs


def get_activation(name: str) -> nn.Module:
    name = name.lower()
    if name == "elu":
        return nn.ELU()
    if name == "selu":
        return nn.SELU()
    if name == "relu":
        return nn.ReLU()
    if name == "lrelu":
        return nn.LeakyReLU()
    if name == "tanh":
        return nn.Tanh()
    if name == "sigmoid":
        return nn.Sigmoid()
    raise ValueError(f"Invalid activation function: {name}")
