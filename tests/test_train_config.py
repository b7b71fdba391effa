"""Tests for Hydra config composition and overrides of conf/train.yaml."""

from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from typing import Any

import pytest
from hydra import compose, initialize_config_dir
from hydra.core.global_hydra import GlobalHydra
from omegaconf import DictConfig, OmegaConf

from lenet_training.config import NetworkConfig, TrainConfig

CONF_DIR = os.path.abspath(
    os.path.join(os.path.dirname(__file__), "..", "src", "lenet_training", "conf")
)


@pytest.fixture()
def hydra_cfg() -> Iterator[DictConfig]:
    """Compose the root training config and yield it, clearing GlobalHydra after."""
    GlobalHydra.instance().clear()
    with initialize_config_dir(config_dir=CONF_DIR, version_base=None):
        cfg = compose(config_name="train")
        yield cfg
    GlobalHydra.instance().clear()


@pytest.fixture()
def hydra_cfg_with_overrides() -> Iterator[Callable[[list[str]], DictConfig]]:
    """Factory fixture for composing config with overrides."""

    def _compose(overrides: list[str]) -> DictConfig:
        GlobalHydra.instance().clear()
        with initialize_config_dir(config_dir=CONF_DIR, version_base=None):
            return compose(config_name="train", overrides=overrides)

    yield _compose
    GlobalHydra.instance().clear()


def _trainer(cfg: DictConfig) -> dict[str, Any]:
    return OmegaConf.to_container(cfg.trainer, resolve=True)  # type: ignore[return-value]


# --- Composition ---


def test_hydra_config_composes(hydra_cfg: DictConfig) -> None:
    """Root config loads with every section present."""
    for section in ("data", "model", "trainer", "callbacks"):
        assert section in hydra_cfg


def test_default_hyperparameters(hydra_cfg: DictConfig) -> None:
    trainer = hydra_cfg.trainer
    assert trainer.learning_rate == pytest.approx(0.01)
    assert trainer.momentum == pytest.approx(0.9)
    assert trainer.decay == pytest.approx(0.95)
    assert trainer.lambda_ == pytest.approx(5e-4)
    assert trainer.batch_size == 32
    assert trainer.parallel_batches == 4
    assert trainer.group_window == "advancing"


def test_default_data_is_histology_patch(hydra_cfg: DictConfig) -> None:
    data = hydra_cfg.data
    assert data.path is None
    assert (data.channels, data.height, data.width) == (3, 256, 256)
    assert data.num_classes == 3


def test_checkpoint_dir_interpolates_output_dir(hydra_cfg: DictConfig) -> None:
    assert _trainer(hydra_cfg)["checkpoint_dir"] == "outputs/checkpoints"


# --- Validation through the pydantic models ---


def test_trainer_section_builds_train_config(hydra_cfg: DictConfig) -> None:
    config = TrainConfig(**_trainer(hydra_cfg))
    assert config.group_size == 128
    assert config.checkpoint_failure == "fatal"


def test_model_section_builds_network_config(hydra_cfg: DictConfig) -> None:
    config = NetworkConfig(**OmegaConf.to_container(hydra_cfg.model, resolve=True))  # type: ignore[arg-type]
    assert config == NetworkConfig()


# --- Overrides ---


def test_overrides_apply(
    hydra_cfg_with_overrides: Callable[[list[str]], DictConfig],
) -> None:
    cfg = hydra_cfg_with_overrides(
        [
            "trainer.epochs=5",
            "trainer.group_window=leading",
            "output_dir=/tmp/run1",
            "model.hidden_units=64",
        ]
    )
    trainer = _trainer(cfg)
    assert trainer["epochs"] == 5
    assert trainer["checkpoint_dir"] == "/tmp/run1/checkpoints"
    config = TrainConfig(**trainer)
    assert config.group_window == "leading"
    assert cfg.model.hidden_units == 64


def test_invalid_override_rejected_by_train_config(
    hydra_cfg_with_overrides: Callable[[list[str]], DictConfig],
) -> None:
    cfg = hydra_cfg_with_overrides(["trainer.momentum=1.5"])
    with pytest.raises(ValueError):
        TrainConfig(**_trainer(cfg))
