"""Checkpoint persistence."""

from lenet_training.io.checkpoint import (
    find_best_checkpoint,
    format_hyperparameters,
    load_checkpoint,
    save_checkpoint,
)

__all__ = [
    "find_best_checkpoint",
    "format_hyperparameters",
    "load_checkpoint",
    "save_checkpoint",
]
