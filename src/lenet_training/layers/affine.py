"""Fully connected layer: ``out = X @ W + b``."""

from __future__ import annotations

import math

import torch

from lenet_training.errors import ShapeError


def init(
    in_features: int,
    out_features: int,
    *,
    generator: torch.Generator | None = None,
    dtype: torch.dtype = torch.float32,
) -> tuple[torch.Tensor, torch.Tensor]:
    """He-normal weights ``(D, M)`` and zero biases ``(1, M)``."""
    W = torch.randn(in_features, out_features, generator=generator, dtype=dtype)
    W = W * math.sqrt(2.0 / in_features)
    b = torch.zeros(1, out_features, dtype=dtype)
    return W, b


def forward(X: torch.Tensor, W: torch.Tensor, b: torch.Tensor) -> torch.Tensor:
    if X.dim() != 2 or X.shape[1] != W.shape[0]:
        msg = f"affine: input {tuple(X.shape)} incompatible with weight {tuple(W.shape)}"
        raise ShapeError(msg)
    return X @ W + b


def backward(
    dout: torch.Tensor, X: torch.Tensor, W: torch.Tensor
) -> tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
    """Gradients ``(dX, dW, db)``."""
    dX = dout @ W.T
    dW = X.T @ dout
    db = dout.sum(dim=0, keepdim=True)
    return dX, dW, db
