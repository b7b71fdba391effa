"""Inverted dropout.

``p`` is the probability of *dropping* a unit.  Kept units are scaled by
``1 / (1 - p)`` during training so inference can skip the layer entirely.
"""

from __future__ import annotations

import torch


def forward(
    X: torch.Tensor,
    p: float,
    *,
    generator: torch.Generator | None = None,
) -> tuple[torch.Tensor, torch.Tensor]:
    """Return the dropped-out activations and the scaled keep mask."""
    if p == 0.0:
        mask = torch.ones_like(X)
        return X, mask
    keep = torch.rand(X.shape, generator=generator, dtype=X.dtype) >= p
    mask = keep.to(X.dtype) / (1.0 - p)
    return X * mask, mask


def backward(dout: torch.Tensor, mask: torch.Tensor) -> torch.Tensor:
    return dout * mask
