"""Shape structs and aliases shared across lenet_training modules."""

from __future__ import annotations

from typing import NamedTuple

import torch

Parameters = dict[str, torch.Tensor]
"""Mapping from parameter name (``Wc1`` ... ``ba2``) to its 2-D tensor."""

PARAM_NAMES: tuple[str, ...] = (
    "Wc1",
    "bc1",
    "Wc2",
    "bc2",
    "Wc3",
    "bc3",
    "Wa1",
    "ba1",
    "Wa2",
    "ba2",
)
WEIGHT_NAMES: tuple[str, ...] = ("Wc1", "Wc2", "Wc3", "Wa1", "Wa2")


class FeatureShape(NamedTuple):
    """Per-example feature map geometry at a layer boundary.

    Inputs travel between layers flattened to ``(N, channels * height * width)``
    so the shape struct is the only place the spatial layout lives.
    """

    channels: int
    height: int
    width: int

    @property
    def numel(self) -> int:
        return self.channels * self.height * self.width


class Window(NamedTuple):
    """Sliding window geometry for convolution and pooling."""

    height: int
    width: int
    stride: int = 1
    padding: int = 0

    def output_size(self, height: int, width: int) -> tuple[int, int]:
        """Spatial output size for an input of ``height x width``."""
        out_h = (height + 2 * self.padding - self.height) // self.stride + 1
        out_w = (width + 2 * self.padding - self.width) // self.stride + 1
        return out_h, out_w
