"""Exception types raised by lenet_training."""

from __future__ import annotations


class ShapeError(ValueError):
    """A tensor does not match the shape a layer or network declared."""


class WorkerError(RuntimeError):
    """A task in a parallel round failed or the round timed out.

    Args:
        message: Human readable description.
        task_index: Index of the failing or overdue task, if known.
    """

    def __init__(self, message: str, task_index: int | None = None) -> None:
        super().__init__(message)
        self.task_index = task_index


class CheckpointError(OSError):
    """Writing or reading a checkpoint directory failed."""
