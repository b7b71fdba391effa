"""Metric records emitted by the training loop."""

from lenet_training.schemas.metrics import EpochMetrics, GroupMetrics

__all__ = ["EpochMetrics", "GroupMetrics"]
