"""Abstract optimizer interface used by the training loop."""

from __future__ import annotations

from abc import ABC, abstractmethod

import torch


class Optimizer(ABC):
    """Per-parameter update rule.

    The training loop owns one state tensor per parameter, created by
    :meth:`init`, and threads it through :meth:`update` once per group.
    Implementations return new tensors and never mutate their inputs, so
    workers holding the previous parameters keep a consistent snapshot.
    """

    @abstractmethod
    def init(self, param: torch.Tensor) -> torch.Tensor:
        """Create the optimizer state for ``param``."""

    @abstractmethod
    def update(
        self,
        param: torch.Tensor,
        grad: torch.Tensor,
        state: torch.Tensor,
        *,
        lr: float,
        mu: float,
    ) -> tuple[torch.Tensor, torch.Tensor]:
        """Return ``(new_param, new_state)``."""
