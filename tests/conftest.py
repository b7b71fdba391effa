"""Shared pytest fixtures for lenet_training tests."""

from __future__ import annotations

from pathlib import Path

import pytest
import torch

from lenet_training.config import NetworkConfig, TrainConfig
from lenet_training.data import generate_dummy_data
from lenet_training.models import LeNetArchitecture, Network, build_network
from lenet_training.types import FeatureShape


@pytest.fixture()
def small_shape() -> FeatureShape:
    """2-channel 8x8 input: pools shrink it 8 -> 4 -> 2 -> 1."""
    return FeatureShape(2, 8, 8)


@pytest.fixture()
def small_net_config() -> NetworkConfig:
    """Narrow network so tests run in milliseconds."""
    return NetworkConfig(conv_filters=(4, 4, 4), hidden_units=8)


@pytest.fixture()
def small_arch(
    small_shape: FeatureShape, small_net_config: NetworkConfig
) -> LeNetArchitecture:
    return LeNetArchitecture.from_config(small_shape, 3, small_net_config)


@pytest.fixture()
def small_network(
    small_shape: FeatureShape, small_net_config: NetworkConfig
) -> Network:
    return build_network(
        small_shape,
        3,
        small_net_config,
        generator=torch.Generator().manual_seed(0),
    )


@pytest.fixture()
def small_network_f64(
    small_shape: FeatureShape, small_net_config: NetworkConfig
) -> Network:
    """Double precision network for exact gradient comparisons."""
    return build_network(
        small_shape,
        3,
        small_net_config,
        generator=torch.Generator().manual_seed(0),
        dtype=torch.float64,
    )


@pytest.fixture()
def small_data(
    small_shape: FeatureShape,
) -> tuple[torch.Tensor, torch.Tensor]:
    """40 examples of 2x8x8 noise with 3 one-hot classes."""
    X, Y, *_ = generate_dummy_data(
        40,
        channels=small_shape.channels,
        height=small_shape.height,
        width=small_shape.width,
        num_classes=3,
        generator=torch.Generator().manual_seed(1),
    )
    return X, Y


@pytest.fixture()
def small_train_config(tmp_path: Path) -> TrainConfig:
    return TrainConfig(
        learning_rate=0.01,
        momentum=0.5,
        decay=0.9,
        lambda_=1e-3,
        batch_size=4,
        parallel_batches=3,
        epochs=2,
        log_interval=1,
        checkpoint_dir=str(tmp_path / "checkpoints"),
        predict_batch_size=16,
    )
