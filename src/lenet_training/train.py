"""Training entrypoint for lenet_training.

Usage:
    lenet-train                                  # defaults (dummy data)
    lenet-train trainer.epochs=10                # override epochs
    lenet-train trainer.batch_size=16 trainer.parallel_batches=8
    lenet-train data.path=/data/patches.pt       # real data
    lenet-train trainer.group_window=leading     # fixed leading-window groups
"""

from __future__ import annotations

import sys
from typing import Any

import hydra
import lightning as L
import torch
from loguru import logger
from omegaconf import DictConfig, OmegaConf

from lenet_training.callbacks import (
    ModelInfoCallback,
    TrainingCallback,
    TrainingHistoryCallback,
)
from lenet_training.config import NetworkConfig, TrainConfig
from lenet_training.data import generate_dummy_data, load_tensors, split_train_val
from lenet_training.training import train
from lenet_training.types import FeatureShape


def _load_data(
    cfg: DictConfig, generator: torch.Generator
) -> tuple[torch.Tensor, torch.Tensor, torch.Tensor, torch.Tensor, FeatureShape]:
    """Resolve the data section into train/val tensors and the input shape."""
    data = cfg.data
    shape = FeatureShape(data.channels, data.height, data.width)
    if data.get("path"):
        X, Y = load_tensors(data.path)
    else:
        logger.warning("No data.path configured, training on dummy data")
        X, Y, *_ = generate_dummy_data(
            data.num_examples,
            channels=shape.channels,
            height=shape.height,
            width=shape.width,
            num_classes=data.num_classes,
            generator=generator,
        )

    if data.get("val_path"):
        X_val, Y_val = load_tensors(data.val_path)
    else:
        X, Y, X_val, Y_val = split_train_val(X, Y, data.val_fraction)
    return X, Y, X_val, Y_val, shape


@hydra.main(version_base=None, config_path="conf", config_name="train")
def run(cfg: DictConfig) -> None:
    """Run training with the given Hydra config."""
    # Setup logging
    logger.remove()
    logger.add(sys.stderr, level=cfg.get("log_level", "INFO"))

    logger.info(f"Configuration:\n{OmegaConf.to_yaml(cfg)}")

    # Seed everything for reproducibility
    seed = cfg.get("seed", 42)
    L.seed_everything(seed, workers=True)

    trainer_cfg: dict[str, Any] = OmegaConf.to_container(cfg.trainer, resolve=True)  # type: ignore[assignment]
    trainer_cfg["seed"] = seed
    train_config = TrainConfig(**trainer_cfg)
    network_config = NetworkConfig(**OmegaConf.to_container(cfg.model, resolve=True))  # type: ignore[arg-type]

    X, Y, X_val, Y_val, input_shape = _load_data(
        cfg, torch.Generator().manual_seed(seed)
    )

    callbacks: list[TrainingCallback] = []
    if cfg.callbacks.get("model_info"):
        callbacks.append(ModelInfoCallback())
    if cfg.callbacks.get("history"):
        callbacks.append(TrainingHistoryCallback(output_dir=cfg.output_dir))

    params = train(
        X,
        Y,
        X_val,
        Y_val,
        input_shape,
        train_config,
        network_config=network_config,
        callbacks=callbacks,
    )
    logger.info(f"Training finished: {len(params)} parameter tensors")


def main() -> None:
    run()


if __name__ == "__main__":
    main()
