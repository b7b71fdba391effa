"""Pydantic frozen configuration models for lenet_training."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class NetworkConfig(BaseModel, frozen=True):
    """Geometry of the 3-conv + 2-affine network.

    Filter size, stride and padding are shared by all three convolutions;
    the defaults keep the spatial size unchanged ("same" convolution).
    """

    filter_size: int = Field(default=3, gt=0)
    stride: int = Field(default=1, gt=0)
    padding: int = Field(default=1, ge=0)
    conv_filters: tuple[int, int, int] = (32, 32, 32)
    hidden_units: int = Field(default=256, gt=0)
    pool_size: int = Field(default=2, gt=0)
    pool_stride: int = Field(default=2, gt=0)
    dropout: float = Field(default=0.5, ge=0.0, lt=1.0)

    @model_validator(mode="after")
    def _filters_positive(self) -> NetworkConfig:
        if any(f <= 0 for f in self.conv_filters):
            msg = f"conv_filters must all be positive, got {self.conv_filters}"
            raise ValueError(msg)
        return self


class TrainConfig(BaseModel):
    """Hyperparameters and runtime knobs for the distributed training loop.

    All fields are validated at construction time. Frozen, no mutation
    after creation; the per-epoch learning rate and momentum live in
    :class:`~lenet_training.schedule.HyperparameterSchedule`.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    learning_rate: float = Field(default=0.01, gt=0.0)
    momentum: float = Field(default=0.9, ge=0.0, lt=1.0)
    decay: float = Field(default=0.95, gt=0.0, le=1.0)
    lambda_: float = Field(default=5e-4, ge=0.0, alias="lambda")
    batch_size: int = Field(default=32, gt=0)
    parallel_batches: int = Field(default=4, gt=0)
    epochs: int = Field(default=1, gt=0)
    log_interval: int = Field(default=1, gt=0)
    checkpoint_dir: str | None = None
    seed: int = 42
    num_workers: int | None = Field(default=None, gt=0)
    worker_timeout: float | None = Field(default=None, gt=0.0)
    max_retries: int = Field(default=0, ge=0)
    predict_batch_size: int = Field(default=64, gt=0)
    group_window: Literal["advancing", "leading"] = "advancing"
    checkpoint_failure: Literal["fatal", "warn"] = "fatal"

    @model_validator(mode="after")
    def _cap_workers_at_parallel_batches(self) -> TrainConfig:
        """More threads than parallel batches would only sit idle."""
        if self.num_workers is not None and self.num_workers > self.parallel_batches:
            # Use object.__setattr__ because model is frozen
            object.__setattr__(self, "num_workers", self.parallel_batches)
        return self

    @property
    def group_size(self) -> int:
        """Examples consumed per optimizer step."""
        return self.parallel_batches * self.batch_size
