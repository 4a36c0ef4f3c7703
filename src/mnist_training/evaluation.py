"""Held-out evaluation: accumulate predictions, emit one result per pass."""

from __future__ import annotations

import torch
from pydantic import BaseModel
from torchmetrics import MetricCollection
from torchmetrics.classification import (
    MulticlassAccuracy,
    MulticlassConfusionMatrix,
    MulticlassF1Score,
    MulticlassPrecision,
    MulticlassRecall,
)


class EvaluationResult(BaseModel, frozen=True):
    """Metrics over one full pass of a held-out partition."""

    epoch: int
    num_samples: int
    accuracy: float
    precision: float
    recall: float
    f1: float
    per_class_accuracy: list[float]
    confusion_matrix: list[list[int]]


class Evaluation:
    """Accumulates predictions against labels across batches.

    Accuracy is micro-averaged; precision, recall and F1 are macro-averaged
    over classes.  Call :meth:`update` per batch, :meth:`compute` once at the
    end of the pass, then :meth:`reset` (or build a new instance).

    Args:
        num_classes: Number of target classes.
    """

    def __init__(self, num_classes: int) -> None:
        self.num_classes = num_classes
        self._metrics = MetricCollection({
            "accuracy": MulticlassAccuracy(num_classes=num_classes, average="micro"),
            "precision": MulticlassPrecision(num_classes=num_classes, average="macro"),
            "recall": MulticlassRecall(num_classes=num_classes, average="macro"),
            "f1": MulticlassF1Score(num_classes=num_classes, average="macro"),
        })
        self._per_class = MulticlassAccuracy(num_classes=num_classes, average="none")
        self._confusion = MulticlassConfusionMatrix(num_classes=num_classes)
        self._num_samples = 0

    @property
    def num_samples(self) -> int:
        return self._num_samples

    def update(self, preds: torch.Tensor, labels: torch.Tensor) -> None:
        """Add one batch of predicted class indices and true labels."""
        preds = preds.detach().cpu()
        labels = labels.detach().cpu()
        self._metrics.update(preds, labels)
        self._per_class.update(preds, labels)
        self._confusion.update(preds, labels)
        self._num_samples += int(labels.numel())

    def compute(self, epoch: int) -> EvaluationResult:
        """Metrics so far. With no samples, scalar metrics are NaN."""
        if self._num_samples == 0:
            nan = float("nan")
            return EvaluationResult(
                epoch=epoch,
                num_samples=0,
                accuracy=nan,
                precision=nan,
                recall=nan,
                f1=nan,
                per_class_accuracy=[nan] * self.num_classes,
                confusion_matrix=[[0] * self.num_classes for _ in range(self.num_classes)],
            )
        scalars = {k: float(v) for k, v in self._metrics.compute().items()}
        return EvaluationResult(
            epoch=epoch,
            num_samples=self._num_samples,
            per_class_accuracy=[float(v) for v in self._per_class.compute()],
            confusion_matrix=self._confusion.compute().tolist(),
            **scalars,
        )

    def reset(self) -> None:
        self._metrics.reset()
        self._per_class.reset()
        self._confusion.reset()
        self._num_samples = 0
