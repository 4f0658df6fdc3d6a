from __future__ import annotations

import torch


class TensorPool:
    """
    Reusable batch tensors keyed by input name.

    Each buffer keeps its largest batch capacity seen so far; `alloc` hands
    out a view of the first `batch_size` rows. Contents are not cleared
    between allocations, callers overwrite every row they use.
    """

    def __init__(self, device: torch.device | str = "cpu") -> None:
        self.device = torch.device(device)
        self._buffers: dict[str, torch.Tensor] = {}

    def __len__(self) -> int:
        return len(self._buffers)

    def alloc(
        self,
        name: str,
        batch_size: int,
        shape: tuple[int, ...],
        dtype: torch.dtype = torch.float32,
    ) -> torch.Tensor:
        if batch_size <= 0:
            raise ValueError(f"`batch_size` must be positive, got {batch_size}")

        buf = self._buffers.get(name)
        if (
            buf is None
            or buf.shape[0] < batch_size
            or tuple(buf.shape[1:]) != tuple(shape)
            or buf.dtype != dtype
        ):
            buf = torch.empty((batch_size, *shape), dtype=dtype, device=self.device)
            self._buffers[name] = buf
        return buf[:batch_size]

    def reset(self) -> None:
        """Release every cached buffer."""
        self._buffers.clear()
