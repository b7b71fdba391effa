"""Per-epoch learning-rate decay and momentum annealing."""

from __future__ import annotations

from pydantic import BaseModel, Field

MOMENTUM_TARGET = 0.999


class HyperparameterSchedule(BaseModel, frozen=True):
    """Learning rate and momentum in effect for one epoch.

    The training loop threads one instance through each epoch and replaces
    it with :meth:`advance` afterwards; nothing mutates in place.
    """

    learning_rate: float = Field(gt=0.0)
    momentum: float = Field(ge=0.0, lt=1.0)
    decay: float = Field(gt=0.0, le=1.0)
    epochs: int = Field(gt=0)

    def advance(self, epoch: int) -> HyperparameterSchedule:
        """Schedule for the epoch after ``epoch`` (1-based).

        Momentum moves linearly toward 0.999 so that it arrives exactly
        after the final epoch; the learning rate decays geometrically.
        """
        if not 1 <= epoch <= self.epochs:
            msg = f"epoch must be in [1, {self.epochs}], got {epoch}"
            raise ValueError(msg)
        momentum = self.momentum + (MOMENTUM_TARGET - self.momentum) / (
            1 + self.epochs - epoch
        )
        return self.model_copy(
            update={
                "learning_rate": self.learning_rate * self.decay,
                "momentum": momentum,
            }
        )

    def momentum_trajectory(self) -> list[float]:
        """Momentum at the start of every epoch followed by the final value."""
        values = [self.momentum]
        schedule = self
        for epoch in range(1, self.epochs + 1):
            schedule = schedule.advance(epoch)
            values.append(schedule.momentum)
        return values
