"""Training metric records."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field


class GroupMetrics(BaseModel):
    """Training loss/accuracy measured on one group's data."""

    epoch: int
    group: int
    loss: float
    accuracy: float = Field(ge=0.0, le=1.0)
    num_examples: int
    created_at: str = Field(default_factory=lambda: datetime.now(tz=UTC).isoformat())


class EpochMetrics(BaseModel):
    """Validation metrics and the hyperparameters used for one epoch."""

    epoch: int
    val_loss: float
    val_accuracy: float = Field(ge=0.0, le=1.0)
    learning_rate: float
    momentum: float
    checkpoint_path: str | None = None
    created_at: str = Field(default_factory=lambda: datetime.now(tz=UTC).isoformat())
