"""Distributed training loop and its building blocks."""

from lenet_training.training.gradients import GradientAggregate
from lenet_training.training.loop import train, train_group, train_network
from lenet_training.training.windows import (
    advancing_window,
    leading_window,
    num_groups,
    worker_slices,
)

__all__ = [
    "GradientAggregate",
    "advancing_window",
    "leading_window",
    "num_groups",
    "train",
    "train_group",
    "train_network",
    "worker_slices",
]
