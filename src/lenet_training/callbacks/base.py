"""Hooks the training loop calls at group and epoch boundaries."""

from __future__ import annotations

from typing import TYPE_CHECKING

from lenet_training.schemas.metrics import EpochMetrics, GroupMetrics
from lenet_training.types import Parameters

if TYPE_CHECKING:
    from lenet_training.models.lenet import LeNetArchitecture


class TrainingCallback:
    """No-op base class; override the hooks you need.

    Hooks run on the training thread after the worker barrier, so they
    never observe a half-applied update.
    """

    def on_train_start(
        self, architecture: LeNetArchitecture, params: Parameters
    ) -> None:
        pass

    def on_group_end(self, metrics: GroupMetrics) -> None:
        pass

    def on_epoch_end(self, metrics: EpochMetrics) -> None:
        pass

    def on_train_end(self, params: Parameters) -> None:
        pass
