"""Type aliases and TypedDicts for mnist_training inter-module contracts."""

from typing import TypedDict

import torch


class ClassificationBatch(TypedDict):
    """A single batch drawn from a BatchProducer.

    images: Float tensor of shape (B, C, H, W), or (B, C*H*W) when flattened,
        min-max scaled into the producer's feature range.
    labels: Long tensor of shape (B,), integer class indices.
    """

    images: torch.Tensor
    labels: torch.Tensor
