"""Training history callback: saves metrics JSON and curve PNGs per epoch."""

from __future__ import annotations

from pathlib import Path

import matplotlib
import matplotlib.pyplot as plt
import orjson
from loguru import logger

from lenet_training.callbacks.base import TrainingCallback
from lenet_training.schemas.metrics import EpochMetrics, GroupMetrics


class TrainingHistoryCallback(TrainingCallback):
    """Record group/epoch metrics and plot them.

    After each epoch, overwrites:
    - ``history.json``: every group and epoch record
    - ``loss_history.png``: group train loss vs epoch validation loss
    - ``accuracy_history.png``: group train accuracy vs validation accuracy

    Args:
        output_dir: Root directory for saved files.
        plot: Set ``False`` to only write the JSON.
    """

    def __init__(self, output_dir: str | Path = "outputs", plot: bool = True) -> None:
        self.output_dir = Path(output_dir) / "training_history"
        self.plot = plot
        self.groups: list[GroupMetrics] = []
        self.epochs: list[EpochMetrics] = []

    def on_group_end(self, metrics: GroupMetrics) -> None:
        self.groups.append(metrics)

    def on_epoch_end(self, metrics: EpochMetrics) -> None:
        """Persist history and refresh plots."""
        self.epochs.append(metrics)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._write_json()
        if not self.plot:
            return
        try:
            self._plot_metrics()
        except Exception as e:
            logger.error(f"Failed to plot training history: {e}")

    def _write_json(self) -> None:
        data = {
            "groups": [m.model_dump() for m in self.groups],
            "epochs": [m.model_dump() for m in self.epochs],
        }
        path = self.output_dir / "history.json"
        path.write_bytes(orjson.dumps(data, option=orjson.OPT_INDENT_2))

    def _group_positions(self) -> list[float]:
        """Fractional epoch positions so groups and epochs share an x axis."""
        per_epoch: dict[int, int] = {}
        for m in self.groups:
            per_epoch[m.epoch] = max(per_epoch.get(m.epoch, 0), m.group)
        return [
            m.epoch - 1 + m.group / per_epoch[m.epoch] for m in self.groups
        ]

    def _plot_metrics(self) -> None:
        """Draw and save loss + accuracy plots."""
        matplotlib.use("Agg")
        positions = self._group_positions()
        epoch_x = [m.epoch for m in self.epochs]

        for filename, title, ylabel, group_vals, epoch_vals in [
            (
                "loss_history.png",
                "Training and Validation Loss",
                "Loss",
                [m.loss for m in self.groups],
                [m.val_loss for m in self.epochs],
            ),
            (
                "accuracy_history.png",
                "Accuracy",
                "Accuracy",
                [m.accuracy for m in self.groups],
                [m.val_accuracy for m in self.epochs],
            ),
        ]:
            fig, ax = plt.subplots(figsize=(10, 6))
            if group_vals:
                ax.plot(positions, group_vals, label="Train (group)", marker="o")
            ax.plot(epoch_x, epoch_vals, label="Validation", marker="s")
            ax.set_title(title)
            ax.set_xlabel("Epoch")
            ax.set_ylabel(ylabel)
            ax.legend()
            ax.grid(True, linestyle="--", alpha=0.7)
            fig.tight_layout()
            fig.savefig(self.output_dir / filename, dpi=150)
            plt.close(fig)

        logger.info(f"Training history plots updated in {self.output_dir}")
