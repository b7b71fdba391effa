"""Training callbacks for lenet_training."""

from lenet_training.callbacks.base import TrainingCallback
from lenet_training.callbacks.history import TrainingHistoryCallback
from lenet_training.callbacks.model_info import ModelInfoCallback

__all__ = [
    "ModelInfoCallback",
    "TrainingCallback",
    "TrainingHistoryCallback",
]
