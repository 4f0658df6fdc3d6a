from __future__ import annotations

import logging
from enum import IntEnum

import torch

logger = logging.getLogger(__name__)


class InferenceDevice(IntEnum):
    """Where to perform inference."""

    CPU = 0
    GPU = 1


def resolve_device(device: InferenceDevice) -> torch.device:
    """Map an inference device onto a concrete torch device.

    GPU falls back to CPU when CUDA is unavailable. The fallback only changes
    where tensors live; runner identity keeps using the requested enum value.
    """
    device = InferenceDevice(device)
    if device == InferenceDevice.GPU:
        if torch.cuda.is_available():
            return torch.device("cuda")
        logger.warning("CUDA is not available, running GPU inference on CPU.")
    return torch.device("cpu")
