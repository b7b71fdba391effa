"""L2 weight regularization: ``0.5 * lambda * ||W||^2``."""

from __future__ import annotations

import torch


def forward(W: torch.Tensor, lambda_: float) -> torch.Tensor:
    return 0.5 * lambda_ * (W * W).sum()


def backward(W: torch.Tensor, lambda_: float) -> torch.Tensor:
    return lambda_ * W
