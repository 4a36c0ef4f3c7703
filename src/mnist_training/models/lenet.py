"""LeNet-5 for 28x28 grayscale digits.

Conv 5x5/20 -> max-pool 2x2 -> conv 5x5/50 -> max-pool 2x2 -> dense 500 ReLU
-> softmax output.  Compared with LeCun et al. (1998): identity activations
on the convolutions, max instead of average pooling, and a softmax output.
"""

from __future__ import annotations

from typing import Any

from mnist_training.config import LayerConfig, ModelConfig
from mnist_training.models.base import BaseClassificationModel
from mnist_training.utils.hydra import register

# iteration -> learning rate
LENET5_SCHEDULE: tuple[tuple[int, float], ...] = (
    (0, 0.06),
    (200, 0.05),
    (600, 0.028),
    (800, 0.006),
    (1000, 0.001),
)


def lenet5_layers(num_classes: int = 10) -> tuple[LayerConfig, ...]:
    return (
        LayerConfig(kind="convolution", kernel_size=5, stride=1, out_channels=20),
        LayerConfig(kind="pooling", kernel_size=2, stride=2, pooling="max"),
        LayerConfig(kind="convolution", kernel_size=5, stride=1, out_channels=50),
        LayerConfig(kind="pooling", kernel_size=2, stride=2, pooling="max"),
        LayerConfig(kind="dense", units=500, activation="relu"),
        LayerConfig(kind="output", units=num_classes, activation="softmax"),
    )


@register(name="lenet5")
class LeNet5Model(BaseClassificationModel):
    """LeNet-5 with Xavier init, L2 5e-4 and Nesterov momentum 0.9.

    Pass a full ``config`` to override the topology; otherwise the keyword
    hyperparameters are combined with :func:`lenet5_layers`.
    """

    def __init__(
        self,
        config: ModelConfig | None = None,
        *,
        num_classes: int = 10,
        input_shape: tuple[int, int, int] = (1, 28, 28),
        seed: int = 1234,
        l2: float = 5e-4,
        momentum: float = 0.9,
        nesterov: bool = True,
        weight_init: str = "xavier",
        learning_rate_schedule: Any = LENET5_SCHEDULE,
        **kwargs: Any,
    ) -> None:
        if config is None:
            config = ModelConfig(
                name="lenet5",
                input_shape=tuple(input_shape),  # type: ignore[arg-type]
                num_classes=num_classes,
                layers=lenet5_layers(num_classes),
                seed=seed,
                weight_init=weight_init,  # type: ignore[arg-type]
                l2=l2,
                momentum=momentum,
                nesterov=nesterov,
                learning_rate_schedule=learning_rate_schedule,
            )
        super().__init__(config)
