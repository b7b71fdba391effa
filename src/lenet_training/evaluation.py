"""Loss and accuracy of predicted class probabilities."""

from __future__ import annotations

import torch

from lenet_training.errors import ShapeError
from lenet_training.layers import cross_entropy_loss


def evaluate(probs: torch.Tensor, Y: torch.Tensor) -> tuple[float, float]:
    """Mean cross-entropy loss and accuracy against one-hot targets.

    Accuracy counts rows where ``argmax(probs) == argmax(Y)``.
    ``torch.argmax`` returns the first maximal index, so ties resolve to
    the lowest class index on both sides.

    Raises:
        ShapeError: If the matrices differ in shape or are empty.
    """
    if probs.dim() != 2 or probs.shape != Y.shape:
        msg = f"evaluate: probabilities {tuple(probs.shape)} vs targets {tuple(Y.shape)}"
        raise ShapeError(msg)
    if probs.shape[0] == 0:
        msg = "evaluate: no examples"
        raise ShapeError(msg)

    loss = max(float(cross_entropy_loss.forward(probs, Y.to(probs.dtype))), 0.0)
    correct = torch.argmax(probs, dim=1) == torch.argmax(Y, dim=1)
    accuracy = float(correct.to(torch.float64).mean())
    return loss, accuracy
