"""Row-wise softmax."""

from __future__ import annotations

import torch


def forward(scores: torch.Tensor) -> torch.Tensor:
    """Numerically stable softmax over each row."""
    shifted = scores - scores.max(dim=1, keepdim=True).values
    exp = torch.exp(shifted)
    return exp / exp.sum(dim=1, keepdim=True)


def backward(dprobs: torch.Tensor, scores: torch.Tensor) -> torch.Tensor:
    probs = forward(scores)
    return probs * (dprobs - (dprobs * probs).sum(dim=1, keepdim=True))
