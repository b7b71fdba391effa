"""Optimizers that update a parameter tensor from its gradient."""

from lenet_training.optim.base import Optimizer
from lenet_training.optim.sgd_nesterov import SGDNesterov

__all__ = ["Optimizer", "SGDNesterov"]
