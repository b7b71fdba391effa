"""Distributed mini-batch SGD training loop.

Each epoch walks the dataset in *groups* of ``parallel_batches * batch_size``
examples.  Within a group every worker runs an independent forward/backward
pass on its own mini-batch against a read-only snapshot of the parameters;
after the barrier the weighted gradients are summed and a single optimizer
step produces the next parameters.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path

import torch
from loguru import logger

from lenet_training.callbacks.base import TrainingCallback
from lenet_training.config import NetworkConfig, TrainConfig
from lenet_training.errors import CheckpointError, ShapeError
from lenet_training.evaluation import evaluate
from lenet_training.inference.predictor import LeNetPredictor
from lenet_training.io.checkpoint import save_checkpoint
from lenet_training.models.lenet import (
    LeNetArchitecture,
    build_network,
    loss_and_gradients,
    regularization_loss,
)
from lenet_training.optim import Optimizer, SGDNesterov
from lenet_training.parallel import WorkerPool
from lenet_training.schedule import HyperparameterSchedule
from lenet_training.schemas.metrics import EpochMetrics, GroupMetrics
from lenet_training.training.gradients import GradientAggregate
from lenet_training.training.windows import (
    GROUP_WINDOWS,
    GroupWindowFn,
    num_groups,
    worker_slices,
)
from lenet_training.types import PARAM_NAMES, FeatureShape, Parameters

_SEED_PRIME = 1_000_003
_SEED_MASK = 0x7FFF_FFFF_FFFF_FFFF


def worker_seed(seed: int, epoch: int, group: int, worker: int) -> int:
    """Deterministic dropout seed for one worker of one group.

    Plain integer arithmetic, so the value is the same on every interpreter.
    """
    value = seed
    for part in (epoch, group, worker):
        value = value * _SEED_PRIME + part
    return value & _SEED_MASK


def train_group(
    X_group: torch.Tensor,
    Y_group: torch.Tensor,
    params: Parameters,
    velocities: Parameters,
    architecture: LeNetArchitecture,
    *,
    batch_size: int,
    parallel_batches: int,
    lambda_: float,
    lr: float,
    mu: float,
    optimizer: Optimizer,
    pool: WorkerPool,
    seeds: Sequence[int] | None = None,
    training: bool = True,
) -> tuple[Parameters, Parameters]:
    """One optimizer step from a group of examples.

    Workers only read ``params`` and write their own aggregate row; the
    optimizer runs once, single-threaded, after all of them finish.

    Args:
        seeds: Per-worker dropout seeds. ``None`` draws from the global RNG.
        training: ``False`` disables dropout (used by gradient checks).

    Returns:
        ``(new_params, new_velocities)``; the inputs are left untouched.
    """
    num_examples = X_group.shape[0]
    if num_examples == 0:
        msg = "train_group: empty group"
        raise ShapeError(msg)

    slices = worker_slices(num_examples, batch_size, parallel_batches)
    if len(slices) < parallel_batches:
        logger.debug(
            f"Group of {num_examples} examples fills {len(slices)}/{parallel_batches} "
            "workers; skipping empty batches"
        )

    aggregate = GradientAggregate(
        architecture.parameter_shapes(), len(slices), dtype=params["Wa2"].dtype
    )
    snapshot = dict(params)

    def _make_task(row: int, rows: slice) -> Callable[[], None]:
        def _task() -> None:
            generator = None
            if seeds is not None:
                generator = torch.Generator().manual_seed(seeds[row])
            _, grads = loss_and_gradients(
                X_group[rows],
                Y_group[rows],
                snapshot,
                architecture,
                lambda_,
                training=training,
                generator=generator,
            )
            aggregate.write(row, grads, (rows.stop - rows.start) / num_examples)

        return _task

    pool.run(
        [_make_task(row, rows) for row, rows in enumerate(slices)], desc="worker"
    )

    grads = aggregate.reduce()
    new_params: Parameters = {}
    new_velocities: Parameters = {}
    for name in PARAM_NAMES:
        new_params[name], new_velocities[name] = optimizer.update(
            params[name], grads[name], velocities[name], lr=lr, mu=mu
        )
    return new_params, new_velocities


def _check_rows(X: torch.Tensor, Y: torch.Tensor, split: str) -> None:
    if X.dim() != 2 or Y.dim() != 2:
        msg = f"{split}: X and Y must be 2-D, got {tuple(X.shape)} and {tuple(Y.shape)}"
        raise ShapeError(msg)
    if X.shape[0] != Y.shape[0]:
        msg = f"{split}: X has {X.shape[0]} rows but Y has {Y.shape[0]}"
        raise ShapeError(msg)
    if X.shape[0] == 0:
        msg = f"{split}: no examples"
        raise ShapeError(msg)


def train(
    X: torch.Tensor,
    Y: torch.Tensor,
    X_val: torch.Tensor,
    Y_val: torch.Tensor,
    input_shape: FeatureShape,
    config: TrainConfig,
    *,
    network_config: NetworkConfig | None = None,
    optimizer: Optimizer | None = None,
    callbacks: Sequence[TrainingCallback] = (),
    window_fn: GroupWindowFn | None = None,
    pool: WorkerPool | None = None,
) -> Parameters:
    """Train the network and return the final ten parameter tensors.

    Args:
        X, Y: Training features ``(N, C*H*W)`` and one-hot targets ``(N, K)``.
        X_val, Y_val: Held-out validation set evaluated after every epoch.
        input_shape: ``(C, H, W)`` of one example.
        config: Hyperparameters and runtime settings.
        network_config: Layer geometry; defaults to the 3x3/32-filter LeNet.
        optimizer: Update rule; defaults to :class:`SGDNesterov`.
        callbacks: Receive group/epoch metrics.
        window_fn: Override for which rows each group trains on.
        pool: Worker pool; built from ``config`` when omitted.

    Raises:
        ShapeError: Inputs inconsistent with each other or the network.
        WorkerError: A worker failed (after retries) or timed out.
        CheckpointError: A checkpoint could not be written and
            ``config.checkpoint_failure == "fatal"``.
    """
    _check_rows(X, Y, "training")
    _check_rows(X_val, Y_val, "validation")
    if Y.shape[1] != Y_val.shape[1]:
        msg = f"Training has {Y.shape[1]} classes but validation has {Y_val.shape[1]}"
        raise ShapeError(msg)

    dtype = X.dtype if X.is_floating_point() else torch.float32
    X, Y = X.to(dtype), Y.to(dtype)
    X_val, Y_val = X_val.to(dtype), Y_val.to(dtype)

    optimizer = optimizer or SGDNesterov()
    network = build_network(
        input_shape,
        Y.shape[1],
        network_config,
        optimizer=optimizer,
        generator=torch.Generator().manual_seed(config.seed),
        dtype=dtype,
    )
    architecture = network.architecture
    if X.shape[1] != input_shape.numel:
        msg = (
            f"X has {X.shape[1]} features, input shape {input_shape} "
            f"needs {input_shape.numel}"
        )
        raise ShapeError(msg)

    pool = pool or WorkerPool(
        num_workers=config.num_workers or config.parallel_batches,
        timeout=config.worker_timeout,
        max_retries=config.max_retries,
    )
    window_name = config.group_window
    if window_fn is None:
        window_fn = GROUP_WINDOWS[config.group_window]
    else:
        window_name = getattr(window_fn, "__name__", "custom")
    schedule = HyperparameterSchedule(
        learning_rate=config.learning_rate,
        momentum=config.momentum,
        decay=config.decay,
        epochs=config.epochs,
    )

    num_examples = X.shape[0]
    groups = num_groups(num_examples, config.group_size)
    params, velocities = network.params, network.velocities
    logger.info(
        f"Training on {num_examples} examples: {config.epochs} epoch(s) x {groups} "
        f"group(s) of {config.group_size} ({config.parallel_batches} x "
        f"{config.batch_size}), window={window_name}"
    )
    for callback in callbacks:
        callback.on_train_start(architecture, params)

    for epoch in range(1, config.epochs + 1):
        for g in range(groups):
            rows = window_fn(g, config.group_size, num_examples)
            X_group, Y_group = X[rows], Y[rows]
            params, velocities = train_group(
                X_group,
                Y_group,
                params,
                velocities,
                architecture,
                batch_size=config.batch_size,
                parallel_batches=config.parallel_batches,
                lambda_=config.lambda_,
                lr=schedule.learning_rate,
                mu=schedule.momentum,
                optimizer=optimizer,
                pool=pool,
                seeds=[
                    worker_seed(config.seed, epoch, g, w)
                    for w in range(config.parallel_batches)
                ],
            )

            if (g + 1) % config.log_interval == 0:
                metrics = _group_metrics(
                    X_group, Y_group, params, architecture, config, pool, epoch, g + 1
                )
                for callback in callbacks:
                    callback.on_group_end(metrics)

        epoch_metrics = _end_epoch(
            X_val, Y_val, params, architecture, config, pool, schedule, epoch
        )
        for callback in callbacks:
            callback.on_epoch_end(epoch_metrics)
        schedule = schedule.advance(epoch)

    for callback in callbacks:
        callback.on_train_end(params)
    return params


def _group_metrics(
    X_group: torch.Tensor,
    Y_group: torch.Tensor,
    params: Parameters,
    architecture: LeNetArchitecture,
    config: TrainConfig,
    pool: WorkerPool,
    epoch: int,
    group: int,
) -> GroupMetrics:
    """Loss (data + L2) and accuracy of the updated parameters on the group."""
    predictor = LeNetPredictor(
        params, architecture, batch_size=config.predict_batch_size, pool=pool
    )
    data_loss, accuracy = evaluate(predictor.predict(X_group), Y_group)
    loss = data_loss + float(regularization_loss(params, config.lambda_))
    logger.bind(
        epoch=epoch, group=group, loss=loss, accuracy=accuracy
    ).info(
        f"Epoch: {epoch}, Group: {group}, Train Loss: {loss:.6f}, "
        f"Train Accuracy: {accuracy:.4f}"
    )
    return GroupMetrics(
        epoch=epoch,
        group=group,
        loss=loss,
        accuracy=accuracy,
        num_examples=X_group.shape[0],
    )


def _end_epoch(
    X_val: torch.Tensor,
    Y_val: torch.Tensor,
    params: Parameters,
    architecture: LeNetArchitecture,
    config: TrainConfig,
    pool: WorkerPool,
    schedule: HyperparameterSchedule,
    epoch: int,
) -> EpochMetrics:
    """Validate, log and checkpoint at the end of ``epoch``."""
    predictor = LeNetPredictor(
        params, architecture, batch_size=config.predict_batch_size, pool=pool
    )
    val_loss, val_accuracy = evaluate(predictor.predict(X_val), Y_val)
    logger.bind(
        epoch=epoch,
        val_loss=val_loss,
        val_accuracy=val_accuracy,
        lr=schedule.learning_rate,
        mu=schedule.momentum,
    ).info(
        f"Epoch: {epoch}, Val Loss: {val_loss:.6f}, Val Accuracy: {val_accuracy:.4f}, "
        f"lr: {schedule.learning_rate:.6g}, mu: {schedule.momentum:.6g}"
    )

    checkpoint_path: Path | None = None
    if config.checkpoint_dir is not None:
        try:
            checkpoint_path = save_checkpoint(
                config.checkpoint_dir,
                epoch,
                params,
                val_accuracy,
                lr=schedule.learning_rate,
                mu=schedule.momentum,
                decay=config.decay,
                lambda_=config.lambda_,
                batch_size=config.batch_size,
            )
        except CheckpointError as e:
            if config.checkpoint_failure == "fatal":
                logger.error(f"Epoch {epoch}: {e}; aborting training")
                raise
            logger.error(f"Epoch {epoch}: {e}; continuing without a checkpoint")

    return EpochMetrics(
        epoch=epoch,
        val_loss=val_loss,
        val_accuracy=val_accuracy,
        learning_rate=schedule.learning_rate,
        momentum=schedule.momentum,
        checkpoint_path=str(checkpoint_path) if checkpoint_path is not None else None,
    )


def train_network(
    X: torch.Tensor,
    Y: torch.Tensor,
    X_val: torch.Tensor,
    Y_val: torch.Tensor,
    C: int,
    Hin: int,
    Win: int,
    lr: float,
    mu: float,
    decay: float,
    lambda_: float,
    batch_size: int,
    parallel_batches: int,
    epochs: int,
    log_interval: int,
    checkpoint_dir: str | Path | None,
    **kwargs: object,
) -> Parameters:
    """Positional-argument entry point mirroring the classic training call.

    Extra keyword arguments are forwarded to :class:`TrainConfig`.
    """
    config = TrainConfig(
        learning_rate=lr,
        momentum=mu,
        decay=decay,
        lambda_=lambda_,
        batch_size=batch_size,
        parallel_batches=parallel_batches,
        epochs=epochs,
        log_interval=log_interval,
        checkpoint_dir=str(checkpoint_dir) if checkpoint_dir is not None else None,
        **kwargs,  # type: ignore[arg-type]
    )
    return train(X, Y, X_val, Y_val, FeatureShape(C, Hin, Win), config)
