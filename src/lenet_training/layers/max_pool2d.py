"""2-D max pooling layer."""

from __future__ import annotations

import torch
import torch.nn.functional as F

from lenet_training.errors import ShapeError
from lenet_training.layers._checks import unflatten
from lenet_training.types import FeatureShape, Window


def output_shape(in_shape: FeatureShape, window: Window) -> FeatureShape:
    out_h, out_w = window.output_size(in_shape.height, in_shape.width)
    if out_h <= 0 or out_w <= 0:
        msg = f"max_pool2d: window {window} does not fit input {in_shape}"
        raise ShapeError(msg)
    return FeatureShape(in_shape.channels, out_h, out_w)


def forward(
    X: torch.Tensor, in_shape: FeatureShape, window: Window
) -> tuple[torch.Tensor, FeatureShape, torch.Tensor]:
    """Pool a batch.

    Returns the flattened output, its shape, and the argmax indices that
    :func:`backward` routes gradients through.
    """
    x = unflatten(X, in_shape, "max_pool2d")
    out, indices = F.max_pool2d(
        x,
        kernel_size=(window.height, window.width),
        stride=window.stride,
        padding=window.padding,
        return_indices=True,
    )
    out_shape = FeatureShape(out.shape[1], out.shape[2], out.shape[3])
    return out.reshape(X.shape[0], -1), out_shape, indices


def backward(
    dout: torch.Tensor,
    out_shape: FeatureShape,
    indices: torch.Tensor,
    in_shape: FeatureShape,
    window: Window,
) -> torch.Tensor:
    """Scatter ``dout`` back to the positions that won each window."""
    dy = unflatten(dout, out_shape, "max_pool2d backward")
    dx = F.max_unpool2d(
        dy,
        indices,
        kernel_size=(window.height, window.width),
        stride=window.stride,
        padding=window.padding,
        output_size=(in_shape.height, in_shape.width),
    )
    return dx.reshape(dout.shape[0], -1)
