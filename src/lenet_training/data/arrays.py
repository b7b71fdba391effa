"""Load, save and split ``(X, Y)`` tensor datasets."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import torch
from loguru import logger

from lenet_training.errors import ShapeError


def _validate(X: torch.Tensor, Y: torch.Tensor, source: str) -> None:
    if X.dim() != 2 or Y.dim() != 2:
        msg = f"{source}: X and Y must be 2-D, got {tuple(X.shape)} and {tuple(Y.shape)}"
        raise ShapeError(msg)
    if X.shape[0] != Y.shape[0]:
        msg = f"{source}: X has {X.shape[0]} rows but Y has {Y.shape[0]}"
        raise ShapeError(msg)


def load_tensors(path: str | Path) -> tuple[torch.Tensor, torch.Tensor]:
    """Read a dataset written by :func:`save_tensors` or a NumPy ``.npz``.

    Both formats hold two arrays under the keys ``X`` and ``Y``.
    """
    path = Path(path)
    if path.suffix == ".npz":
        with np.load(path) as arrays:
            X = torch.from_numpy(np.ascontiguousarray(arrays["X"], dtype=np.float32))
            Y = torch.from_numpy(np.ascontiguousarray(arrays["Y"], dtype=np.float32))
    else:
        data = torch.load(path, map_location="cpu", weights_only=True)
        X, Y = data["X"].to(torch.float32), data["Y"].to(torch.float32)
    _validate(X, Y, str(path))
    logger.info(f"Loaded {X.shape[0]} examples ({X.shape[1]} features) from {path}")
    return X, Y


def save_tensors(path: str | Path, X: torch.Tensor, Y: torch.Tensor) -> Path:
    """Write ``X`` and ``Y`` with ``torch.save`` (or ``np.savez`` for ``.npz``)."""
    _validate(X, Y, "save_tensors")
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix == ".npz":
        np.savez(path, X=X.numpy(), Y=Y.numpy())
    else:
        torch.save({"X": X, "Y": Y}, path)
    return path


def split_train_val(
    X: torch.Tensor, Y: torch.Tensor, val_fraction: float
) -> tuple[torch.Tensor, torch.Tensor, torch.Tensor, torch.Tensor]:
    """Hold out the trailing ``val_fraction`` of rows for validation.

    Returns:
        ``(X_train, Y_train, X_val, Y_val)``.
    """
    _validate(X, Y, "split_train_val")
    if not 0.0 < val_fraction < 1.0:
        msg = f"val_fraction must be in (0, 1), got {val_fraction}"
        raise ValueError(msg)
    num_val = round(X.shape[0] * val_fraction)
    if num_val == 0 or num_val == X.shape[0]:
        msg = (
            f"val_fraction={val_fraction} leaves an empty split for "
            f"{X.shape[0]} examples"
        )
        raise ValueError(msg)
    split = X.shape[0] - num_val
    return X[:split], Y[:split], X[split:], Y[split:]
