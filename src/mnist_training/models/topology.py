"""Turn a validated ModelConfig into torch layers."""

from __future__ import annotations

import math

import torch
from torch import nn

from mnist_training.config import LayerConfig, ModelConfig, Shape

_ACTIVATIONS: dict[str, type[nn.Module]] = {
    "relu": nn.ReLU,
    "sigmoid": nn.Sigmoid,
    "tanh": nn.Tanh,
}


def _activation(layer: LayerConfig) -> nn.Module | None:
    if layer.activation == "identity":
        return None
    if layer.activation == "softmax":
        # Output layers feed NLLLoss, which expects log-probabilities.
        return nn.LogSoftmax(dim=1) if layer.kind == "output" else nn.Softmax(dim=1)
    return _ACTIVATIONS[layer.activation]()


def build_network(config: ModelConfig) -> nn.Sequential:
    """Build an ``nn.Sequential`` for ``config.layers``.

    Shapes come from :func:`mnist_training.config.infer_shapes`, which the
    config already ran at construction, so every layer's input size is known.
    Convolutions and pooling use no padding.
    """
    in_shapes: list[Shape] = [config.input_shape, *config.layer_shapes[:-1]]
    modules: list[nn.Module] = []
    for layer, in_shape in zip(config.layers, in_shapes):
        if layer.kind == "convolution":
            modules.append(
                nn.Conv2d(
                    in_shape[0],
                    layer.out_channels,  # type: ignore[arg-type]
                    kernel_size=layer.kernel_size,  # type: ignore[arg-type]
                    stride=layer.stride,
                )
            )
        elif layer.kind == "pooling":
            pool = nn.MaxPool2d if layer.pooling == "max" else nn.AvgPool2d
            modules.append(pool(kernel_size=layer.kernel_size, stride=layer.stride))  # type: ignore[arg-type]
        else:
            if len(in_shape) != 1:
                modules.append(nn.Flatten())
            modules.append(nn.Linear(math.prod(in_shape), layer.units))  # type: ignore[arg-type]
        act = _activation(layer)
        if act is not None:
            modules.append(act)
    return nn.Sequential(*modules)


def init_weights(network: nn.Module, scheme: str) -> None:
    """Initialize conv/linear weights by ``scheme``; biases start at zero."""
    for module in network.modules():
        if not isinstance(module, (nn.Conv2d, nn.Linear)):
            continue
        if scheme == "xavier":
            nn.init.xavier_normal_(module.weight)
        elif scheme == "relu":
            nn.init.kaiming_normal_(module.weight, nonlinearity="relu")
        elif scheme == "zeros":
            nn.init.zeros_(module.weight)
        else:
            raise ValueError(f"Unknown weight init scheme: {scheme!r}")
        if module.bias is not None:
            nn.init.zeros_(module.bias)


def seeded_network(config: ModelConfig) -> nn.Sequential:
    """Build and initialize the network with ``config.seed``.

    The global RNG state is restored afterwards.
    """
    with torch.random.fork_rng(devices=[]):
        torch.manual_seed(config.seed)
        network = build_network(config)
        init_weights(network, config.weight_init)
    return network
