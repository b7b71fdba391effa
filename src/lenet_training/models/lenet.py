"""LeNet-style CNN for histology patch classification.

Topology (``F1=F2=F3=32``, ``N1=256`` by default)::

    conv1 -> relu -> pool1 -> conv2 -> relu -> pool2 -> conv3 -> relu -> pool3
    -> affine1 -> relu -> dropout -> affine2 -> softmax

Every layer boundary has a :class:`~lenet_training.types.FeatureShape`
computed once by :class:`LeNetArchitecture`, so shape errors surface when the
network is built rather than halfway through a training group.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import NamedTuple

import torch

from lenet_training.config import NetworkConfig
from lenet_training.errors import ShapeError
from lenet_training.layers import (
    affine,
    conv2d,
    cross_entropy_loss,
    dropout,
    l2_reg,
    max_pool2d,
    relu,
    softmax,
)
from lenet_training.optim import Optimizer, SGDNesterov
from lenet_training.types import (
    PARAM_NAMES,
    WEIGHT_NAMES,
    FeatureShape,
    Parameters,
    Window,
)


class ConvBlock(NamedTuple):
    """Shapes around one conv -> relu -> pool block."""

    in_shape: FeatureShape
    conv_shape: FeatureShape
    pool_shape: FeatureShape


@dataclass(frozen=True)
class LeNetArchitecture:
    """Statically computed layer geometry of the network."""

    input_shape: FeatureShape
    num_classes: int
    blocks: tuple[ConvBlock, ...]
    hidden_units: int
    conv_window: Window
    pool_window: Window
    dropout: float

    @classmethod
    def from_config(
        cls,
        input_shape: FeatureShape,
        num_classes: int,
        config: NetworkConfig | None = None,
    ) -> LeNetArchitecture:
        """Walk the topology once and compute every boundary shape.

        Raises:
            ShapeError: If the input is degenerate or a window no longer fits.
        """
        config = config or NetworkConfig()
        if min(input_shape) <= 0:
            msg = f"Input shape must be positive, got {input_shape}"
            raise ShapeError(msg)
        if num_classes <= 0:
            msg = f"num_classes must be positive, got {num_classes}"
            raise ShapeError(msg)

        conv_window = Window(
            config.filter_size, config.filter_size, config.stride, config.padding
        )
        pool_window = Window(config.pool_size, config.pool_size, config.pool_stride, 0)

        blocks = []
        shape = input_shape
        for num_filters in config.conv_filters:
            conv_shape = conv2d.output_shape(shape, num_filters, conv_window)
            pool_shape = max_pool2d.output_shape(conv_shape, pool_window)
            blocks.append(ConvBlock(shape, conv_shape, pool_shape))
            shape = pool_shape

        return cls(
            input_shape=input_shape,
            num_classes=num_classes,
            blocks=tuple(blocks),
            hidden_units=config.hidden_units,
            conv_window=conv_window,
            pool_window=pool_window,
            dropout=config.dropout,
        )

    @classmethod
    def from_parameters(
        cls,
        input_shape: FeatureShape,
        params: Parameters,
        config: NetworkConfig | None = None,
    ) -> LeNetArchitecture:
        """Infer layer widths from existing tensors (e.g. a loaded checkpoint).

        Window geometry still comes from ``config``; filter counts, hidden
        units and classes are read off the weights, then every tensor is
        validated against the resulting architecture.
        """
        config = config or NetworkConfig()
        missing = [name for name in PARAM_NAMES if name not in params]
        if missing:
            msg = f"Missing parameter tensors: {missing}"
            raise ShapeError(msg)
        filters = tuple(int(params[f"Wc{i}"].shape[0]) for i in (1, 2, 3))
        widths = config.model_copy(
            update={
                "conv_filters": filters,
                "hidden_units": int(params["Wa1"].shape[1]),
            }
        )
        arch = cls.from_config(input_shape, int(params["Wa2"].shape[1]), widths)
        arch.validate(params)
        return arch

    @property
    def flat_features(self) -> int:
        """Width of the flattened feature vector entering ``affine1``."""
        return self.blocks[-1].pool_shape.numel

    def parameter_shapes(self) -> dict[str, tuple[int, int]]:
        shapes: dict[str, tuple[int, int]] = {}
        win = self.conv_window
        for i, block in enumerate(self.blocks, start=1):
            filters = block.conv_shape.channels
            shapes[f"Wc{i}"] = (filters, block.in_shape.channels * win.height * win.width)
            shapes[f"bc{i}"] = (filters, 1)
        shapes["Wa1"] = (self.flat_features, self.hidden_units)
        shapes["ba1"] = (1, self.hidden_units)
        shapes["Wa2"] = (self.hidden_units, self.num_classes)
        shapes["ba2"] = (1, self.num_classes)
        return shapes

    def validate(self, params: Parameters) -> None:
        """Raise :class:`ShapeError` unless ``params`` fits this architecture."""
        for name, expected in self.parameter_shapes().items():
            if name not in params:
                msg = f"Missing parameter tensor {name!r}"
                raise ShapeError(msg)
            actual = tuple(params[name].shape)
            if actual != expected:
                msg = f"Parameter {name}: expected shape {expected}, got {actual}"
                raise ShapeError(msg)


@dataclass
class Network:
    """Freshly built parameters plus their optimizer state."""

    architecture: LeNetArchitecture
    params: Parameters
    velocities: Parameters


def build_network(
    input_shape: FeatureShape,
    num_classes: int,
    config: NetworkConfig | None = None,
    *,
    optimizer: Optimizer | None = None,
    generator: torch.Generator | None = None,
    dtype: torch.dtype = torch.float32,
) -> Network:
    """Initialize the ten parameter tensors and a zero state for each.

    The output layer feeds softmax rather than relu, so its He-initialized
    weights are scaled down by ``1 / sqrt(2)``.
    """
    architecture = LeNetArchitecture.from_config(input_shape, num_classes, config)
    optimizer = optimizer or SGDNesterov()

    params: Parameters = {}
    for i, block in enumerate(architecture.blocks, start=1):
        params[f"Wc{i}"], params[f"bc{i}"] = conv2d.init(
            block.conv_shape.channels,
            block.in_shape.channels,
            architecture.conv_window,
            generator=generator,
            dtype=dtype,
        )
    params["Wa1"], params["ba1"] = affine.init(
        architecture.flat_features,
        architecture.hidden_units,
        generator=generator,
        dtype=dtype,
    )
    params["Wa2"], params["ba2"] = affine.init(
        architecture.hidden_units,
        architecture.num_classes,
        generator=generator,
        dtype=dtype,
    )
    params["Wa2"] = params["Wa2"] / math.sqrt(2.0)

    velocities = {name: optimizer.init(params[name]) for name in PARAM_NAMES}
    return Network(architecture=architecture, params=params, velocities=velocities)


@dataclass
class ForwardCache:
    """Intermediate activations the backward pass needs."""

    block_inputs: list[torch.Tensor] = field(default_factory=list)
    conv_outputs: list[torch.Tensor] = field(default_factory=list)
    relu_outputs: list[torch.Tensor] = field(default_factory=list)
    pool_indices: list[torch.Tensor] = field(default_factory=list)
    flat: torch.Tensor | None = None
    hidden: torch.Tensor | None = None
    hidden_relu: torch.Tensor | None = None
    dropout_mask: torch.Tensor | None = None
    hidden_out: torch.Tensor | None = None
    scores: torch.Tensor | None = None


def forward(
    X: torch.Tensor,
    params: Parameters,
    architecture: LeNetArchitecture,
    *,
    training: bool = False,
    generator: torch.Generator | None = None,
) -> tuple[torch.Tensor, ForwardCache]:
    """Run the network on ``X`` of shape ``(N, C*H*W)``.

    With ``training=False`` dropout is bypassed entirely (not rescaled).

    Returns:
        Class probabilities ``(N, K)`` and the cache for :func:`backward`.
    """
    cache = ForwardCache()
    out = X
    for i, block in enumerate(architecture.blocks, start=1):
        cache.block_inputs.append(out)
        conv_out, _ = conv2d.forward(
            out,
            params[f"Wc{i}"],
            params[f"bc{i}"],
            block.in_shape,
            architecture.conv_window,
        )
        relu_out = relu.forward(conv_out)
        out, _, indices = max_pool2d.forward(
            relu_out, block.conv_shape, architecture.pool_window
        )
        cache.conv_outputs.append(conv_out)
        cache.relu_outputs.append(relu_out)
        cache.pool_indices.append(indices)

    cache.flat = out
    cache.hidden = affine.forward(out, params["Wa1"], params["ba1"])
    cache.hidden_relu = relu.forward(cache.hidden)
    if training:
        cache.hidden_out, cache.dropout_mask = dropout.forward(
            cache.hidden_relu, architecture.dropout, generator=generator
        )
    else:
        cache.hidden_out = cache.hidden_relu
    cache.scores = affine.forward(cache.hidden_out, params["Wa2"], params["ba2"])
    return softmax.forward(cache.scores), cache


def backward(
    probs: torch.Tensor,
    Y: torch.Tensor,
    params: Parameters,
    architecture: LeNetArchitecture,
    cache: ForwardCache,
) -> Parameters:
    """Gradients of the mean cross-entropy loss w.r.t. every parameter.

    The gradient w.r.t. the network input is computed by the first conv
    layer but discarded.
    """
    assert cache.scores is not None and cache.hidden_out is not None
    assert cache.hidden is not None and cache.flat is not None

    grads: Parameters = {}
    dprobs = cross_entropy_loss.backward(probs, Y)
    dscores = softmax.backward(dprobs, cache.scores)
    dhidden_out, grads["Wa2"], grads["ba2"] = affine.backward(
        dscores, cache.hidden_out, params["Wa2"]
    )
    if cache.dropout_mask is not None:
        dhidden_relu = dropout.backward(dhidden_out, cache.dropout_mask)
    else:
        dhidden_relu = dhidden_out
    dhidden = relu.backward(dhidden_relu, cache.hidden)
    dout, grads["Wa1"], grads["ba1"] = affine.backward(dhidden, cache.flat, params["Wa1"])

    for i in range(len(architecture.blocks), 0, -1):
        block = architecture.blocks[i - 1]
        drelu = max_pool2d.backward(
            dout,
            block.pool_shape,
            cache.pool_indices[i - 1],
            block.conv_shape,
            architecture.pool_window,
        )
        dconv = relu.backward(drelu, cache.conv_outputs[i - 1])
        dout, grads[f"Wc{i}"], grads[f"bc{i}"] = conv2d.backward(
            dconv,
            block.conv_shape,
            cache.block_inputs[i - 1],
            params[f"Wc{i}"],
            block.in_shape,
            architecture.conv_window,
        )
    return grads


def regularization_loss(params: Parameters, lambda_: float) -> torch.Tensor:
    """Sum of the L2 penalties of the five weight tensors (biases excluded)."""
    return sum(
        (l2_reg.forward(params[name], lambda_) for name in WEIGHT_NAMES),
        start=torch.zeros((), dtype=params["Wa2"].dtype),
    )


def loss_and_gradients(
    X: torch.Tensor,
    Y: torch.Tensor,
    params: Parameters,
    architecture: LeNetArchitecture,
    lambda_: float,
    *,
    training: bool = True,
    generator: torch.Generator | None = None,
) -> tuple[torch.Tensor, Parameters]:
    """One full forward/backward pass on a mini-batch.

    Returns the data loss and the gradients, with ``lambda * W`` added to
    every weight gradient.
    """
    if X.shape[0] == 0:
        msg = "loss_and_gradients: received an empty batch"
        raise ShapeError(msg)
    if X.shape[0] != Y.shape[0]:
        msg = f"Row mismatch: X has {X.shape[0]} rows, Y has {Y.shape[0]}"
        raise ShapeError(msg)
    probs, cache = forward(X, params, architecture, training=training, generator=generator)
    loss = cross_entropy_loss.forward(probs, Y)
    grads = backward(probs, Y, params, architecture, cache)
    for name in WEIGHT_NAMES:
        grads[name] = grads[name] + l2_reg.backward(params[name], lambda_)
    return loss, grads
