"""Tests for the network builder, static architecture and full backward pass."""

from __future__ import annotations

import math

import pytest
import torch

from lenet_training.config import NetworkConfig
from lenet_training.errors import ShapeError
from lenet_training.layers import affine, conv2d, cross_entropy_loss
from lenet_training.models import (
    LeNetArchitecture,
    Network,
    backward,
    build_network,
    forward,
    loss_and_gradients,
    regularization_loss,
)
from lenet_training.optim import SGDNesterov
from lenet_training.types import PARAM_NAMES, WEIGHT_NAMES, FeatureShape, Window

# ---------------------------------------------------------------------------
# LeNetArchitecture
# ---------------------------------------------------------------------------


class TestArchitecture:
    def test_default_histology_shapes(self) -> None:
        """3x256x256 input, 3 classes, F=32 filters, N1=256 hidden units."""
        arch = LeNetArchitecture.from_config(FeatureShape(3, 256, 256), 3)
        assert arch.parameter_shapes() == {
            "Wc1": (32, 27),
            "bc1": (32, 1),
            "Wc2": (32, 288),
            "bc2": (32, 1),
            "Wc3": (32, 288),
            "bc3": (32, 1),
            "Wa1": (32 * 32 * 32, 256),
            "ba1": (1, 256),
            "Wa2": (256, 3),
            "ba2": (1, 3),
        }

    def test_block_shapes_halve_spatial_size(self) -> None:
        arch = LeNetArchitecture.from_config(FeatureShape(3, 64, 64), 2)
        assert [b.conv_shape for b in arch.blocks] == [
            FeatureShape(32, 64, 64),
            FeatureShape(32, 32, 32),
            FeatureShape(32, 16, 16),
        ]
        assert arch.blocks[-1].pool_shape == FeatureShape(32, 8, 8)
        assert arch.flat_features == 32 * 8 * 8
        assert arch.conv_window == Window(3, 3, 1, 1)
        assert arch.pool_window == Window(2, 2, 2, 0)

    def test_too_small_input_raises(self) -> None:
        """4x4 pools to 2x2, then 1x1, then a 2x2 window no longer fits."""
        with pytest.raises(ShapeError):
            LeNetArchitecture.from_config(FeatureShape(1, 4, 4), 2)

    @pytest.mark.parametrize("shape", [FeatureShape(0, 8, 8), FeatureShape(1, -8, 8)])
    def test_non_positive_input_raises(self, shape: FeatureShape) -> None:
        with pytest.raises(ShapeError):
            LeNetArchitecture.from_config(shape, 2)

    def test_zero_classes_raises(self) -> None:
        with pytest.raises(ShapeError):
            LeNetArchitecture.from_config(FeatureShape(1, 8, 8), 0)

    def test_from_parameters_infers_widths(
        self, small_shape: FeatureShape, small_network: Network
    ) -> None:
        arch = LeNetArchitecture.from_parameters(small_shape, small_network.params)
        assert arch == small_network.architecture

    def test_from_parameters_rejects_bad_shape(
        self, small_shape: FeatureShape, small_network: Network
    ) -> None:
        params = dict(small_network.params)
        params["Wa1"] = torch.zeros(5, 8)
        with pytest.raises(ShapeError, match="Wa1"):
            LeNetArchitecture.from_parameters(small_shape, params)

    def test_from_parameters_rejects_missing_tensor(
        self, small_shape: FeatureShape, small_network: Network
    ) -> None:
        params = dict(small_network.params)
        del params["bc2"]
        with pytest.raises(ShapeError, match="bc2"):
            LeNetArchitecture.from_parameters(small_shape, params)


# ---------------------------------------------------------------------------
# build_network
# ---------------------------------------------------------------------------


class TestBuildNetwork:
    def test_parameters_match_declared_shapes(self, small_network: Network) -> None:
        shapes = small_network.architecture.parameter_shapes()
        assert set(small_network.params) == set(PARAM_NAMES)
        for name in PARAM_NAMES:
            assert tuple(small_network.params[name].shape) == shapes[name]

    def test_velocities_are_zero_and_match_shapes(self, small_network: Network) -> None:
        for name in PARAM_NAMES:
            velocity = small_network.velocities[name]
            assert velocity.shape == small_network.params[name].shape
            assert torch.count_nonzero(velocity) == 0

    def test_biases_start_at_zero(self, small_network: Network) -> None:
        for name in PARAM_NAMES:
            if name not in WEIGHT_NAMES:
                assert torch.count_nonzero(small_network.params[name]) == 0

    def test_output_weights_scaled_by_inverse_sqrt2(
        self, small_shape: FeatureShape, small_net_config: NetworkConfig
    ) -> None:
        """Wa2 is the default affine init divided by sqrt(2); others are untouched."""
        network = build_network(
            small_shape,
            3,
            small_net_config,
            generator=torch.Generator().manual_seed(7),
        )
        arch = network.architecture

        gen = torch.Generator().manual_seed(7)
        expected = {}
        for i, block in enumerate(arch.blocks, start=1):
            expected[f"Wc{i}"], _ = conv2d.init(
                block.conv_shape.channels,
                block.in_shape.channels,
                arch.conv_window,
                generator=gen,
            )
        expected["Wa1"], _ = affine.init(arch.flat_features, 8, generator=gen)
        expected["Wa2"], _ = affine.init(8, 3, generator=gen)

        for name in ("Wc1", "Wc2", "Wc3", "Wa1"):
            assert torch.equal(network.params[name], expected[name])
        assert torch.allclose(network.params["Wa2"], expected["Wa2"] / math.sqrt(2.0))

    def test_dtype_is_respected(self, small_network_f64: Network) -> None:
        for name in PARAM_NAMES:
            assert small_network_f64.params[name].dtype == torch.float64
            assert small_network_f64.velocities[name].dtype == torch.float64

    def test_optimizer_state_comes_from_optimizer(
        self, small_shape: FeatureShape, small_net_config: NetworkConfig
    ) -> None:
        network = build_network(
            small_shape, 3, small_net_config, optimizer=SGDNesterov()
        )
        assert set(network.velocities) == set(PARAM_NAMES)


# ---------------------------------------------------------------------------
# forward / backward
# ---------------------------------------------------------------------------


class TestForwardBackward:
    def test_forward_returns_probabilities(
        self, small_network: Network, small_data: tuple[torch.Tensor, torch.Tensor]
    ) -> None:
        X, _ = small_data
        probs, _ = forward(X, small_network.params, small_network.architecture)
        assert probs.shape == (40, 3)
        assert torch.allclose(probs.sum(dim=1), torch.ones(40), atol=1e-5)

    def test_inference_forward_is_deterministic(
        self, small_network: Network, small_data: tuple[torch.Tensor, torch.Tensor]
    ) -> None:
        """Dropout is bypassed entirely outside training."""
        X, _ = small_data
        p1, cache = forward(X, small_network.params, small_network.architecture)
        p2, _ = forward(X, small_network.params, small_network.architecture)
        assert torch.equal(p1, p2)
        assert cache.dropout_mask is None

    def test_wrong_input_width_raises(self, small_network: Network) -> None:
        with pytest.raises(ShapeError):
            forward(torch.randn(2, 10), small_network.params, small_network.architecture)

    def test_backward_matches_autograd(
        self,
        small_network_f64: Network,
        small_data: tuple[torch.Tensor, torch.Tensor],
    ) -> None:
        X, Y = (t.to(torch.float64) for t in small_data)
        arch = small_network_f64.architecture
        params = {
            k: v.clone().requires_grad_(True)
            for k, v in small_network_f64.params.items()
        }
        probs, cache = forward(X, params, arch)
        cross_entropy_loss.forward(probs, Y).backward()

        with torch.no_grad():
            grads = backward(probs, Y, params, arch, cache)
        for name in PARAM_NAMES:
            assert torch.allclose(grads[name], params[name].grad, atol=1e-10), name

    def test_training_backward_matches_autograd_with_dropout(
        self,
        small_network_f64: Network,
        small_data: tuple[torch.Tensor, torch.Tensor],
    ) -> None:
        X, Y = (t.to(torch.float64) for t in small_data)
        arch = small_network_f64.architecture
        params = {
            k: v.clone().requires_grad_(True)
            for k, v in small_network_f64.params.items()
        }
        probs, cache = forward(
            X, params, arch, training=True, generator=torch.Generator().manual_seed(5)
        )
        assert cache.dropout_mask is not None
        cross_entropy_loss.forward(probs, Y).backward()

        with torch.no_grad():
            grads = backward(probs, Y, params, arch, cache)
        for name in PARAM_NAMES:
            assert torch.allclose(grads[name], params[name].grad, atol=1e-10), name

    def test_loss_and_gradients_adds_l2_to_weights_only(
        self,
        small_network_f64: Network,
        small_data: tuple[torch.Tensor, torch.Tensor],
    ) -> None:
        X, Y = (t.to(torch.float64) for t in small_data)
        arch = small_network_f64.architecture
        lambda_ = 0.05
        params = {
            k: v.clone().requires_grad_(True)
            for k, v in small_network_f64.params.items()
        }
        probs, _ = forward(X, params, arch)
        total = cross_entropy_loss.forward(probs, Y) + regularization_loss(
            params, lambda_
        )
        total.backward()

        with torch.no_grad():
            loss, grads = loss_and_gradients(
                X, Y, params, arch, lambda_, training=False
            )
        assert float(loss) == pytest.approx(
            float(cross_entropy_loss.forward(probs, Y)), rel=1e-12
        )
        for name in PARAM_NAMES:
            assert torch.allclose(grads[name], params[name].grad, atol=1e-10), name

    def test_empty_batch_raises(self, small_network: Network) -> None:
        arch = small_network.architecture
        X = torch.zeros(0, arch.input_shape.numel)
        Y = torch.zeros(0, 3)
        with pytest.raises(ShapeError, match="empty"):
            loss_and_gradients(X, Y, small_network.params, arch, 0.0)
