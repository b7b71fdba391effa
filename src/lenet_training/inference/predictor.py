"""Batched, data-parallel class-probability prediction."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import torch
from loguru import logger

from lenet_training.config import NetworkConfig
from lenet_training.errors import ShapeError
from lenet_training.io.checkpoint import load_checkpoint
from lenet_training.models.lenet import LeNetArchitecture, forward
from lenet_training.parallel import WorkerPool
from lenet_training.types import FeatureShape, Parameters


class LeNetPredictor:
    """Run the inference path of a trained network.

    Rows are split into contiguous batches that run concurrently on a
    :class:`WorkerPool`; each batch writes only its own rows of the output,
    so row ``i`` of the input always produces row ``i`` of the result.

    Args:
        params: The ten parameter tensors.
        architecture: Geometry matching ``params``.
        batch_size: Rows per forward pass.
        pool: Worker pool for the batches. Defaults to one thread per batch.
    """

    def __init__(
        self,
        params: Parameters,
        architecture: LeNetArchitecture,
        batch_size: int = 64,
        pool: WorkerPool | None = None,
    ) -> None:
        if batch_size <= 0:
            msg = f"batch_size must be positive, got {batch_size}"
            raise ValueError(msg)
        architecture.validate(params)
        self.params = params
        self.architecture = architecture
        self.batch_size = batch_size
        self.pool = pool or WorkerPool()

    @classmethod
    def from_checkpoint(
        cls,
        epoch_dir: str | Path,
        input_shape: FeatureShape,
        *,
        network_config: NetworkConfig | None = None,
        batch_size: int = 64,
        pool: WorkerPool | None = None,
    ) -> LeNetPredictor:
        """Load parameters from a checkpoint epoch directory."""
        params = load_checkpoint(epoch_dir)
        architecture = LeNetArchitecture.from_parameters(
            input_shape, params, network_config
        )
        return cls(params, architecture, batch_size=batch_size, pool=pool)

    def predict(self, X: torch.Tensor) -> torch.Tensor:
        """Class probabilities of shape ``(N, K)`` for ``X`` of shape ``(N, C*H*W)``."""
        expected = self.architecture.input_shape.numel
        if X.dim() != 2 or X.shape[1] != expected:
            msg = f"predict: expected input (N, {expected}), got {tuple(X.shape)}"
            raise ShapeError(msg)

        num_rows = X.shape[0]
        probs = torch.empty(
            num_rows, self.architecture.num_classes, dtype=self.params["Wa2"].dtype
        )
        if num_rows == 0:
            return probs

        def _make_task(start: int, stop: int) -> Callable[[], None]:
            def _task() -> None:
                out, _ = forward(X[start:stop], self.params, self.architecture)
                probs[start:stop] = out

            return _task

        tasks = [
            _make_task(start, min(num_rows, start + self.batch_size))
            for start in range(0, num_rows, self.batch_size)
        ]
        logger.debug(f"Predicting {num_rows} rows in {len(tasks)} batch(es)")
        self.pool.run(tasks, desc="predict")
        return probs


def predict(
    X: torch.Tensor,
    input_shape: FeatureShape,
    params: Parameters,
    batch_size: int = 64,
    *,
    network_config: NetworkConfig | None = None,
    pool: WorkerPool | None = None,
) -> torch.Tensor:
    """Class probabilities for ``X`` using the given parameters.

    Layer widths are read off ``params``; ``network_config`` only supplies
    window geometry (filter size, stride, padding, pooling).
    """
    architecture = LeNetArchitecture.from_parameters(
        input_shape, params, network_config
    )
    predictor = LeNetPredictor(params, architecture, batch_size=batch_size, pool=pool)
    return predictor.predict(X)
