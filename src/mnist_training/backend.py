"""Numerical backend adapter: the only place that touches the device.

The training loop talks to a :class:`NumericalBackend` and never to torch
directly.  :class:`TorchBackend` implements it on top of a
:class:`BaseClassificationModel` and scopes the device for the duration of a
``with`` block.
"""

from __future__ import annotations

import gc
from pathlib import Path
from types import TracebackType
from typing import Any, Protocol, runtime_checkable

import torch
from loguru import logger

from mnist_training.models.base import BaseClassificationModel
from mnist_training.persistence import save_artifact
from mnist_training.types import ClassificationBatch


@runtime_checkable
class NumericalBackend(Protocol):
    """Operations the training loop issues, in the order it issues them."""

    @property
    def score(self) -> float | None:
        """Loss of the most recent training step."""
        ...

    def train_step(self, batch: ClassificationBatch, learning_rate: float) -> None: ...

    def evaluate(self, batch: ClassificationBatch) -> torch.Tensor:
        """Predicted class indices for ``batch``, shape ``(B,)``."""
        ...

    def save(self, path: Path) -> None: ...


def resolve_device(accelerator: str) -> torch.device:
    """Map an accelerator name to a torch device.

    ``"auto"`` prefers CUDA, then falls back to CPU.
    """
    if accelerator == "auto":
        return torch.device("cuda" if torch.cuda.is_available() else "cpu")
    if accelerator == "cuda" and not torch.cuda.is_available():
        raise RuntimeError("accelerator='cuda' requested but CUDA is not available")
    if accelerator == "mps" and not torch.backends.mps.is_available():
        raise RuntimeError("accelerator='mps' requested but MPS is not available")
    return torch.device(accelerator)


class TorchBackend:
    """Runs a classification model on one device.

    Use as a context manager.  Entering moves the model to the device and
    builds its optimizer; leaving moves it back to the CPU, drops the
    optimizer and empties the CUDA cache, on every exit path.

    Args:
        model: The model to train.
        accelerator: ``"auto"``, ``"cpu"``, ``"cuda"`` or ``"mps"``.
        labels_mapping: Written into the artifact by :meth:`save`.
    """

    def __init__(
        self,
        model: BaseClassificationModel,
        accelerator: str = "auto",
        labels_mapping: dict[str, Any] | None = None,
    ) -> None:
        self.model = model
        self.accelerator = accelerator
        self.labels_mapping = labels_mapping
        self.device: torch.device | None = None
        self._optimizer: torch.optim.Optimizer | None = None
        self._score: float | None = None

    def __enter__(self) -> TorchBackend:
        self.device = resolve_device(self.accelerator)
        self.model.to(self.device)
        self._optimizer = self.model.configure_optimizers()
        logger.info(
            f"Acquired {self.device} for {type(self.model).__name__} "
            f"({self.model.num_parameters:,} parameters)"
        )
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        device = self.device
        self._optimizer = None
        self.model.to("cpu")
        self.device = None
        gc.collect()
        if device is not None and device.type == "cuda":
            torch.cuda.empty_cache()
        logger.debug(f"Released {device}")

    def _require_active(self) -> torch.device:
        if self.device is None:
            raise RuntimeError("TorchBackend used outside of its 'with' block")
        return self.device

    def _to_device(self, batch: ClassificationBatch) -> ClassificationBatch:
        device = self._require_active()
        return {
            "images": batch["images"].to(device),
            "labels": batch["labels"].to(device),
        }

    @property
    def score(self) -> float | None:
        return self._score

    def train_step(self, batch: ClassificationBatch, learning_rate: float) -> None:
        """One optimizer step on ``batch`` at ``learning_rate``."""
        batch = self._to_device(batch)
        assert self._optimizer is not None
        for group in self._optimizer.param_groups:
            group["lr"] = learning_rate

        self.model.train()
        self._optimizer.zero_grad()
        loss = self.model.training_step(batch, 0)
        if not torch.isfinite(loss):
            raise FloatingPointError(f"Non-finite training loss: {loss.item()}")
        loss.backward()
        self._optimizer.step()
        self._score = float(loss.detach())

    @torch.no_grad()
    def evaluate(self, batch: ClassificationBatch) -> torch.Tensor:
        batch = self._to_device(batch)
        self.model.eval()
        preds: torch.Tensor = self.model.predict_step(batch)
        return preds.cpu()

    def save(self, path: Path) -> None:
        save_artifact(self.model, path, labels_mapping=self.labels_mapping)
