"""Epoch loop: train on every batch, then evaluate the held-out partition."""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum

from loguru import logger

from mnist_training.backend import NumericalBackend
from mnist_training.data.producer import BatchProducer
from mnist_training.evaluation import Evaluation, EvaluationResult
from mnist_training.schedule import LearningRateSchedule


class TrainingState(str, Enum):
    IDLE = "idle"
    TRAINING = "training"
    EVALUATING = "evaluating"
    DONE = "done"


class TrainingLoop:
    """Runs a fixed number of epochs against a NumericalBackend.

    States go ``IDLE -> TRAINING(0) -> EVALUATING(0) -> TRAINING(1) -> ...
    -> DONE``.  A training epoch drains the training producer with one
    ``train_step`` per batch, at the rate the schedule gives for the current
    global step.  The evaluation that follows resets and drains the held-out
    producer and yields exactly one :class:`EvaluationResult`.

    The epoch count is fixed; there is no early stopping.  Any exception from
    the backend or a producer propagates and ends the run where it happened.

    Args:
        backend: Receives train/evaluate calls. Must already be active.
        train_batches: Training producer, reset at the start of each epoch.
        held_out_batches: Held-out producer, never used for updates.
        schedule: Step-indexed learning rates.
        num_classes: Number of classes for the evaluation metrics.
        max_epochs: Number of epochs to run.
        score_interval: Log the training loss every N steps (0 disables).
        on_evaluation: Called with each result as it is produced.
    """

    def __init__(
        self,
        backend: NumericalBackend,
        train_batches: BatchProducer,
        held_out_batches: BatchProducer,
        schedule: LearningRateSchedule,
        *,
        num_classes: int = 10,
        max_epochs: int = 3,
        score_interval: int = 10,
        on_evaluation: Callable[[EvaluationResult], None] | None = None,
    ) -> None:
        if max_epochs < 1:
            raise ValueError(f"max_epochs must be >= 1, got {max_epochs}")
        self.backend = backend
        self.train_batches = train_batches
        self.held_out_batches = held_out_batches
        self.schedule = schedule
        self.num_classes = num_classes
        self.max_epochs = max_epochs
        self.score_interval = score_interval
        self.on_evaluation = on_evaluation

        self.state = TrainingState.IDLE
        self.epoch = 0
        self.global_step = 0
        self.results: list[EvaluationResult] = []

    def run(self) -> list[EvaluationResult]:
        """Train for ``max_epochs`` epochs; return one result per epoch."""
        if self.state is not TrainingState.IDLE:
            raise RuntimeError(f"TrainingLoop.run() called in state {self.state.value}")

        logger.info(
            f"Starting training: {self.max_epochs} epoch(s), "
            f"{self.train_batches.num_batches} batch(es) per epoch"
        )
        for epoch in range(self.max_epochs):
            self.epoch = epoch
            self._train_epoch()
            logger.info(f"Completed epoch {epoch}")

            self.state = TrainingState.EVALUATING
            result = self.evaluate(self.held_out_batches, epoch=epoch)
            self.results.append(result)
            if self.on_evaluation is not None:
                self.on_evaluation(result)

        self.state = TrainingState.DONE
        return self.results

    def _train_epoch(self) -> None:
        self.state = TrainingState.TRAINING
        self.train_batches.reset()
        for batch in self.train_batches:
            lr = self.schedule.learning_rate_at(self.global_step)
            self.backend.train_step(batch, lr)
            self.global_step += 1
            if self.score_interval and self.global_step % self.score_interval == 0:
                logger.info(
                    f"Score at iteration {self.global_step} is "
                    f"{self.backend.score:.6f} (lr={lr:g})"
                )

    def evaluate(self, batches: BatchProducer, epoch: int | None = None) -> EvaluationResult:
        """Reset and drain ``batches``, returning the accumulated metrics."""
        evaluation = Evaluation(self.num_classes)
        batches.reset()
        for batch in batches:
            preds = self.backend.evaluate(batch)
            evaluation.update(preds, batch["labels"])
        result = evaluation.compute(self.epoch if epoch is None else epoch)
        logger.info(
            f"Evaluation ({batches.name}) epoch {result.epoch}: "
            f"accuracy={result.accuracy:.4f} over {result.num_samples} samples"
        )
        return result
