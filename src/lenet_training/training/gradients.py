"""Weighted gradient aggregation across parallel workers."""

from __future__ import annotations

import math

import torch

from lenet_training.types import Parameters


class GradientAggregate:
    """One ``(num_rows, numel)`` buffer per parameter for a single group.

    Each worker owns one row and writes its flattened gradient pre-scaled by
    ``worker_examples / group_examples``.  Summing the rows therefore gives
    the example-weighted mean gradient, exact even when the last worker's
    batch is short.

    Args:
        param_shapes: Shape of every parameter tensor, keyed by name.
        num_rows: Number of workers in the group.
        dtype: Buffer dtype (matches the parameters).
    """

    def __init__(
        self,
        param_shapes: dict[str, tuple[int, ...]],
        num_rows: int,
        dtype: torch.dtype = torch.float32,
    ) -> None:
        self.param_shapes = dict(param_shapes)
        self.num_rows = num_rows
        self.buffers = {
            name: torch.zeros(num_rows, math.prod(shape), dtype=dtype)
            for name, shape in self.param_shapes.items()
        }

    def write(self, row: int, grads: Parameters, scale: float) -> None:
        """Store ``scale * grad`` for every parameter in ``row``."""
        if not 0 <= row < self.num_rows:
            msg = f"row {row} out of range for {self.num_rows} workers"
            raise IndexError(msg)
        for name, buffer in self.buffers.items():
            buffer[row].copy_(grads[name].reshape(-1) * scale)

    def reduce(self) -> Parameters:
        """Column-sum each buffer and restore the parameter shape."""
        return {
            name: buffer.sum(dim=0).reshape(self.param_shapes[name])
            for name, buffer in self.buffers.items()
        }
