"""Cross-entropy loss over one-hot targets, averaged over examples."""

from __future__ import annotations

import torch

from lenet_training.errors import ShapeError

EPS = 1e-10


def _check(pred: torch.Tensor, Y: torch.Tensor) -> None:
    if pred.shape != Y.shape:
        msg = f"cross_entropy_loss: predictions {tuple(pred.shape)} vs targets {tuple(Y.shape)}"
        raise ShapeError(msg)


def forward(pred: torch.Tensor, Y: torch.Tensor) -> torch.Tensor:
    """Scalar tensor ``-sum(Y * log(pred + eps)) / N``."""
    _check(pred, Y)
    return -(Y * torch.log(pred + EPS)).sum() / pred.shape[0]


def backward(pred: torch.Tensor, Y: torch.Tensor) -> torch.Tensor:
    _check(pred, Y)
    return -(Y / (pred + EPS)) / pred.shape[0]
