"""Model info callback: reports parameter shapes, counts and size."""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger
from rich import box
from rich.console import Console
from rich.table import Table

from lenet_training.callbacks.base import TrainingCallback
from lenet_training.types import PARAM_NAMES, Parameters

if TYPE_CHECKING:
    from lenet_training.models.lenet import LeNetArchitecture


class ModelInfoCallback(TrainingCallback):
    """Print a table of the ten parameter tensors at training start.

    Args:
        console: Rich console to print to. Defaults to a new Console.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()
        self.total_params = 0
        self.size_mb = 0.0

    def on_train_start(
        self, architecture: LeNetArchitecture, params: Parameters
    ) -> None:
        """Compute parameter statistics, print the table and log a summary."""
        self.total_params = sum(params[name].numel() for name in PARAM_NAMES)
        size_bytes = sum(
            params[name].numel() * params[name].element_size() for name in PARAM_NAMES
        )
        self.size_mb = size_bytes / (1024 * 1024)

        table = Table(
            title="Model Information",
            header_style="bold magenta",
            box=box.SQUARE,
            show_lines=True,
        )
        table.add_column("Parameter", style="cyan")
        table.add_column("Shape", style="green")
        table.add_column("Count", style="green", justify="right")
        for name in PARAM_NAMES:
            table.add_row(
                name, str(tuple(params[name].shape)), f"{params[name].numel():,}"
            )
        table.add_row("Total", "", f"{self.total_params:,}")
        self.console.print(table)

        logger.info(
            f"Model: LeNet {architecture.input_shape} -> {architecture.num_classes} "
            f"classes | Params: {self.total_params:,} | Size: {self.size_mb:.2f} MB"
        )
