"""Input validation shared by the spatial layers."""

from __future__ import annotations

import torch

from lenet_training.errors import ShapeError
from lenet_training.types import FeatureShape


def unflatten(X: torch.Tensor, shape: FeatureShape, layer: str) -> torch.Tensor:
    """View a ``(N, C*H*W)`` matrix as ``(N, C, H, W)``, checking its width."""
    if X.dim() != 2 or X.shape[1] != shape.numel:
        msg = (
            f"{layer}: expected input of shape (N, {shape.numel}) for {shape}, "
            f"got {tuple(X.shape)}"
        )
        raise ShapeError(msg)
    return X.reshape(X.shape[0], shape.channels, shape.height, shape.width)
