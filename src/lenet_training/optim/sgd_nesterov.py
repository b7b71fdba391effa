"""Stochastic gradient descent with Nesterov momentum."""

from __future__ import annotations

import torch

from lenet_training.optim.base import Optimizer


class SGDNesterov(Optimizer):
    """SGD with Nesterov momentum, in the "look-ahead" reformulation.

    The state is a velocity tensor ``v`` of the parameter's shape::

        v_prev = v
        v = mu * v - lr * dX
        X = X - mu * v_prev + (1 + mu) * v
    """

    def init(self, param: torch.Tensor) -> torch.Tensor:
        return torch.zeros_like(param)

    def update(
        self,
        param: torch.Tensor,
        grad: torch.Tensor,
        state: torch.Tensor,
        *,
        lr: float,
        mu: float,
    ) -> tuple[torch.Tensor, torch.Tensor]:
        v_prev = state
        v = mu * v_prev - lr * grad
        new_param = param - mu * v_prev + (1 + mu) * v
        return new_param, v
