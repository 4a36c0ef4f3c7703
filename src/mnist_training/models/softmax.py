"""Single-layer softmax regression over flattened 28x28 images."""

from __future__ import annotations

from typing import Any

from mnist_training.config import LayerConfig, ModelConfig
from mnist_training.models.base import BaseClassificationModel
from mnist_training.utils.hydra import register


@register(name="softmax")
class SoftmaxRegressionModel(BaseClassificationModel):
    """``softmax(x @ W + b)`` trained by plain gradient descent.

    Weights and biases start at zero; the default schedule is a constant
    0.2 from step 0.
    """

    def __init__(
        self,
        config: ModelConfig | None = None,
        *,
        num_classes: int = 10,
        input_shape: tuple[int, int, int] = (1, 28, 28),
        seed: int = 1234,
        learning_rate: float = 0.2,
        learning_rate_schedule: Any = None,
        **kwargs: Any,
    ) -> None:
        if config is None:
            config = ModelConfig(
                name="softmax",
                input_shape=tuple(input_shape),  # type: ignore[arg-type]
                num_classes=num_classes,
                layers=(
                    LayerConfig(kind="output", units=num_classes, activation="softmax"),
                ),
                seed=seed,
                weight_init="zeros",
                learning_rate_schedule=learning_rate_schedule or ((0, learning_rate),),
            )
        super().__init__(config)
