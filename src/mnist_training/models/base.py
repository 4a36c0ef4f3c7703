"""Base LightningModule for all MNIST classification models."""

from __future__ import annotations

from typing import Any

import lightning as L
import torch
from torch import nn

from mnist_training.config import ModelConfig
from mnist_training.models.topology import seeded_network
from mnist_training.schedule import LearningRateSchedule
from mnist_training.types import ClassificationBatch


class BaseClassificationModel(L.LightningModule):
    """Network built from a :class:`ModelConfig`.

    The topology is fixed at construction; only parameter values change
    during training.  Subclasses supply the default topology and
    hyperparameters and pass a finished config to ``__init__``.

    ``forward`` returns log-probabilities, matching the negative
    log-likelihood loss.  Inputs may be ``(B, C, H, W)`` or flattened
    ``(B, C*H*W)``; both are reshaped to ``config.input_shape``.
    """

    def __init__(self, config: ModelConfig) -> None:
        super().__init__()
        self.config = config
        self.save_hyperparameters(config.model_dump(mode="json"))
        self.network = seeded_network(config)
        self.loss_fn = nn.NLLLoss()

    @classmethod
    def from_config(cls, config: ModelConfig) -> BaseClassificationModel:
        return cls(config=config)

    @property
    def schedule(self) -> LearningRateSchedule:
        return self.config.schedule

    @property
    def num_parameters(self) -> int:
        return sum(p.numel() for p in self.parameters())

    def forward(self, images: torch.Tensor) -> torch.Tensor:
        x = images.reshape(images.shape[0], *self.config.input_shape)
        return self.network(x)  # type: ignore[no-any-return]

    def training_step(
        self, batch: ClassificationBatch, batch_idx: int
    ) -> torch.Tensor:
        images, labels = batch["images"], batch["labels"]
        log_probs = self(images)
        loss: torch.Tensor = self.loss_fn(log_probs, labels)
        return loss

    def predict_step(
        self, batch: ClassificationBatch, batch_idx: int = 0, dataloader_idx: int = 0
    ) -> torch.Tensor:
        """Predicted class indices, shape ``(B,)``."""
        return self(batch["images"]).argmax(dim=1)

    def configure_optimizers(self) -> torch.optim.Optimizer:  # type: ignore[override]
        """SGD (optionally Nesterov momentum) with L2 on weights only.

        The initial lr is the schedule's first entry; the training loop
        overwrites it every step from the schedule.
        """
        decay: list[nn.Parameter] = []
        no_decay: list[nn.Parameter] = []
        for name, param in self.named_parameters():
            if not param.requires_grad:
                continue
            (no_decay if name.endswith("bias") else decay).append(param)

        param_groups: list[dict[str, Any]] = [
            {"params": decay, "weight_decay": self.config.l2},
            {"params": no_decay, "weight_decay": 0.0},
        ]
        return torch.optim.SGD(
            param_groups,
            lr=self.schedule.initial_rate,
            momentum=self.config.momentum,
            nesterov=self.config.nesterov,
        )
