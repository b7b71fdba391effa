"""LeNet-style network: static architecture, builder and forward/backward."""

from lenet_training.models.lenet import (
    ConvBlock,
    ForwardCache,
    LeNetArchitecture,
    Network,
    backward,
    build_network,
    forward,
    loss_and_gradients,
    regularization_loss,
)

__all__ = [
    "ConvBlock",
    "ForwardCache",
    "LeNetArchitecture",
    "Network",
    "backward",
    "build_network",
    "forward",
    "loss_and_gradients",
    "regularization_loss",
]
