"""2-D convolution layer.

Weights are stored as ``(F, C*Hf*Wf)`` and biases as ``(F, 1)``; forward and
backward reshape them to the 4-D layout torch's convolution kernels expect.
"""

from __future__ import annotations

import math

import torch
import torch.nn.functional as F
from torch.nn.grad import conv2d_input, conv2d_weight

from lenet_training.errors import ShapeError
from lenet_training.layers._checks import unflatten
from lenet_training.types import FeatureShape, Window


def init(
    num_filters: int,
    in_channels: int,
    window: Window,
    *,
    generator: torch.Generator | None = None,
    dtype: torch.dtype = torch.float32,
) -> tuple[torch.Tensor, torch.Tensor]:
    """He-normal weights ``N(0, sqrt(2 / fan_in))`` and zero biases."""
    fan_in = in_channels * window.height * window.width
    W = torch.randn(num_filters, fan_in, generator=generator, dtype=dtype)
    W = W * math.sqrt(2.0 / fan_in)
    b = torch.zeros(num_filters, 1, dtype=dtype)
    return W, b


def output_shape(
    in_shape: FeatureShape, num_filters: int, window: Window
) -> FeatureShape:
    """Feature shape produced by convolving ``in_shape`` with ``window``."""
    out_h, out_w = window.output_size(in_shape.height, in_shape.width)
    if out_h <= 0 or out_w <= 0:
        msg = f"conv2d: window {window} does not fit input {in_shape}"
        raise ShapeError(msg)
    return FeatureShape(num_filters, out_h, out_w)


def _weight_4d(W: torch.Tensor, in_shape: FeatureShape, window: Window) -> torch.Tensor:
    expected = in_shape.channels * window.height * window.width
    if W.dim() != 2 or W.shape[1] != expected:
        msg = f"conv2d: weight of shape {tuple(W.shape)} does not match {in_shape}"
        raise ShapeError(msg)
    return W.reshape(W.shape[0], in_shape.channels, window.height, window.width)


def forward(
    X: torch.Tensor,
    W: torch.Tensor,
    b: torch.Tensor,
    in_shape: FeatureShape,
    window: Window,
) -> tuple[torch.Tensor, FeatureShape]:
    """Convolve a batch, returning the flattened output and its shape."""
    x = unflatten(X, in_shape, "conv2d")
    out = F.conv2d(
        x,
        _weight_4d(W, in_shape, window),
        b.reshape(-1),
        stride=window.stride,
        padding=window.padding,
    )
    out_shape = FeatureShape(out.shape[1], out.shape[2], out.shape[3])
    return out.reshape(X.shape[0], -1), out_shape


def backward(
    dout: torch.Tensor,
    out_shape: FeatureShape,
    X: torch.Tensor,
    W: torch.Tensor,
    in_shape: FeatureShape,
    window: Window,
) -> tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
    """Gradients ``(dX, dW, db)`` given the upstream gradient ``dout``."""
    x = unflatten(X, in_shape, "conv2d")
    dy = unflatten(dout, out_shape, "conv2d backward")
    w = _weight_4d(W, in_shape, window)

    dx = conv2d_input(
        x.shape, w, dy, stride=window.stride, padding=window.padding
    )
    dw = conv2d_weight(
        x, w.shape, dy, stride=window.stride, padding=window.padding
    )
    db = dy.sum(dim=(0, 2, 3)).reshape(-1, 1)
    return dx.reshape(X.shape[0], -1), dw.reshape(W.shape), db
