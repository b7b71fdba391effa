"""Stateless layer primitives with explicit forward/backward functions.

Every layer operates on 2-D inputs of shape ``(N, features)``; spatial
layers take a :class:`~lenet_training.types.FeatureShape` describing how the
features unflatten into ``(C, H, W)``.  Nothing here touches autograd.
"""

from lenet_training.layers import (
    affine,
    conv2d,
    cross_entropy_loss,
    dropout,
    l2_reg,
    max_pool2d,
    relu,
    softmax,
)

__all__ = [
    "affine",
    "conv2d",
    "cross_entropy_loss",
    "dropout",
    "l2_reg",
    "max_pool2d",
    "relu",
    "softmax",
]
