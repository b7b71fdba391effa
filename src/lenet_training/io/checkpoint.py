"""Per-epoch checkpoint directories.

Layout for epoch ``e``::

    checkpoint_dir/e/Wc1 ... checkpoint_dir/e/ba2   # one torch.save file each
    checkpoint_dir/e/<val_accuracy>                 # hyperparameter sidecar

The parameter files are written first and the sidecar last, so an epoch
directory without a sidecar is an incomplete checkpoint.
"""

from __future__ import annotations

import pickle
from pathlib import Path

import torch
from loguru import logger

from lenet_training.errors import CheckpointError
from lenet_training.types import PARAM_NAMES, Parameters


def format_hyperparameters(
    lr: float, mu: float, decay: float, lambda_: float, batch_size: int
) -> str:
    """Sidecar text recording the hyperparameters an epoch ran with."""
    return (
        f"lr: {lr}, mu: {mu}, decay: {decay}, lambda: {lambda_}, "
        f"batch_size: {batch_size}"
    )


def save_checkpoint(
    checkpoint_dir: str | Path,
    epoch: int,
    params: Parameters,
    val_accuracy: float,
    *,
    lr: float,
    mu: float,
    decay: float,
    lambda_: float,
    batch_size: int,
) -> Path:
    """Write the ten parameter tensors and the sidecar for ``epoch``.

    Stale sidecars from an earlier run into the same directory are removed
    before anything is written, so the directory always holds exactly one.

    Returns:
        The epoch directory.

    Raises:
        CheckpointError: If any file cannot be written.
    """
    epoch_dir = Path(checkpoint_dir) / str(epoch)
    try:
        epoch_dir.mkdir(parents=True, exist_ok=True)
        for path in epoch_dir.iterdir():
            if path.is_file() and path.name not in PARAM_NAMES:
                logger.debug(f"Removing stale checkpoint file {path}")
                path.unlink()
        for name in PARAM_NAMES:
            torch.save(params[name].detach().clone(), epoch_dir / name)
        sidecar = epoch_dir / str(val_accuracy)
        sidecar.write_text(
            format_hyperparameters(lr, mu, decay, lambda_, batch_size) + "\n"
        )
    except OSError as e:
        msg = f"Failed to write checkpoint {epoch_dir}: {e}"
        raise CheckpointError(msg) from e

    logger.info(f"Checkpoint written: {epoch_dir} (val_accuracy={val_accuracy})")
    return epoch_dir


def load_checkpoint(epoch_dir: str | Path) -> Parameters:
    """Load the ten parameter tensors from an epoch directory.

    Raises:
        CheckpointError: If a parameter file is missing or unreadable.
    """
    epoch_dir = Path(epoch_dir)
    params: Parameters = {}
    for name in PARAM_NAMES:
        path = epoch_dir / name
        if not path.is_file():
            msg = f"Checkpoint {epoch_dir} is missing parameter file {name!r}"
            raise CheckpointError(msg)
        try:
            params[name] = torch.load(path, map_location="cpu", weights_only=True)
        except (OSError, RuntimeError, EOFError, pickle.UnpicklingError) as e:
            msg = f"Failed to read {path}: {e}"
            raise CheckpointError(msg) from e
    logger.debug(f"Loaded checkpoint {epoch_dir}")
    return params


def _sidecar_accuracy(epoch_dir: Path) -> float | None:
    """Accuracy encoded in the sidecar file name, if the epoch is complete.

    Raises:
        CheckpointError: If the directory holds more than one sidecar.
    """
    accuracies = []
    for path in sorted(epoch_dir.iterdir()):
        if path.name in PARAM_NAMES or not path.is_file():
            continue
        try:
            accuracies.append(float(path.name))
        except ValueError:
            continue
    if len(accuracies) > 1:
        msg = f"Checkpoint {epoch_dir} has {len(accuracies)} accuracy sidecars"
        raise CheckpointError(msg)
    return accuracies[0] if accuracies else None


def find_best_checkpoint(checkpoint_dir: str | Path) -> tuple[Path, float]:
    """Epoch directory with the highest recorded validation accuracy.

    Ties go to the earliest epoch.  Directories without a sidecar are
    skipped as incomplete.

    Raises:
        CheckpointError: If no complete checkpoint exists, or an epoch
            directory holds more than one sidecar.
    """
    root = Path(checkpoint_dir)
    if not root.is_dir():
        msg = f"Checkpoint directory not found: {root}"
        raise CheckpointError(msg)

    best: tuple[Path, float] | None = None
    epoch_dirs = sorted(
        (p for p in root.iterdir() if p.is_dir() and p.name.isdigit()),
        key=lambda p: int(p.name),
    )
    for epoch_dir in epoch_dirs:
        accuracy = _sidecar_accuracy(epoch_dir)
        if accuracy is None:
            logger.warning(f"Skipping incomplete checkpoint {epoch_dir}")
            continue
        if best is None or accuracy > best[1]:
            best = (epoch_dir, accuracy)

    if best is None:
        msg = f"No complete checkpoints under {root}"
        raise CheckpointError(msg)
    return best
