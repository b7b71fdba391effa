"""Random stand-in data shaped like RGB histology patches."""

from __future__ import annotations

import torch
import torch.nn.functional as F
from loguru import logger


def generate_dummy_data(
    num_examples: int,
    *,
    channels: int = 3,
    height: int = 256,
    width: int = 256,
    num_classes: int = 3,
    generator: torch.Generator | None = None,
) -> tuple[torch.Tensor, torch.Tensor, int, int, int]:
    """Standard-normal features with uniformly drawn one-hot labels.

    Returns:
        ``(X, Y, C, H, W)`` with ``X`` of shape ``(N, C*H*W)`` and ``Y`` of
        shape ``(N, num_classes)``.
    """
    if num_examples <= 0:
        msg = f"num_examples must be positive, got {num_examples}"
        raise ValueError(msg)
    X = torch.randn(num_examples, channels * height * width, generator=generator)
    labels = torch.randint(0, num_classes, (num_examples,), generator=generator)
    Y = F.one_hot(labels, num_classes).to(torch.float32)
    logger.debug(
        f"Generated {num_examples} dummy examples of {channels}x{height}x{width}, "
        f"{num_classes} classes"
    )
    return X, Y, channels, height, width
