"""Tests for Evaluation metric accumulation."""

import math

import pytest
import torch

from mnist_training.evaluation import Evaluation


@pytest.fixture()
def evaluation() -> Evaluation:
    ev = Evaluation(num_classes=3)
    ev.update(torch.tensor([0, 1]), torch.tensor([0, 1]))
    ev.update(torch.tensor([1, 2]), torch.tensor([2, 2]))
    return ev


class TestEvaluation:
    def test_accuracy_across_batches(self, evaluation: Evaluation) -> None:
        result = evaluation.compute(epoch=2)
        assert result.epoch == 2
        assert result.num_samples == 4
        assert result.accuracy == pytest.approx(0.75)

    def test_confusion_matrix_rows_are_true_class(self, evaluation: Evaluation) -> None:
        result = evaluation.compute(epoch=0)
        assert result.confusion_matrix == [[1, 0, 0], [0, 1, 0], [0, 1, 1]]
        assert result.per_class_accuracy == pytest.approx([1.0, 1.0, 0.5])

    def test_macro_scores(self, evaluation: Evaluation) -> None:
        result = evaluation.compute(epoch=0)
        assert result.precision == pytest.approx(5 / 6)
        assert result.recall == pytest.approx(5 / 6)
        assert result.f1 == pytest.approx((1.0 + 2 / 3 + 2 / 3) / 3)

    def test_empty_pass_is_nan(self) -> None:
        result = Evaluation(num_classes=10).compute(epoch=0)
        assert result.num_samples == 0
        assert math.isnan(result.accuracy)
        assert result.confusion_matrix == [[0] * 10 for _ in range(10)]

    def test_reset(self, evaluation: Evaluation) -> None:
        evaluation.reset()
        assert evaluation.num_samples == 0
        evaluation.update(torch.tensor([2]), torch.tensor([2]))
        assert evaluation.compute(epoch=1).accuracy == pytest.approx(1.0)
