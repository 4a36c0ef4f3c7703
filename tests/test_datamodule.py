"""Tests for MnistDataModule wiring."""

from pathlib import Path

import pytest
import torch

from mnist_training.config import DataModuleConfig
from mnist_training.data.datamodule import MnistDataModule


def _module(data_root: Path, **overrides: object) -> MnistDataModule:
    return MnistDataModule(
        data_root=str(data_root), download=False, progress=False, **overrides
    )


class TestClassMapping:
    def test_sorted_from_training_dirs(self, data_root: Path) -> None:
        dm = _module(data_root)
        assert dm.class_to_idx == {str(d): d for d in range(10)}
        assert dm.num_classes == 10

    def test_empty_before_data_exists(self, tmp_path: Path) -> None:
        dm = _module(tmp_path)
        assert dm.class_to_idx == {}

    def test_config_object_wins_over_kwargs(self, data_root: Path) -> None:
        cfg = DataModuleConfig(data_root=str(data_root), batch_size=7, download=False)
        dm = MnistDataModule(cfg, batch_size=99)
        assert dm.config.batch_size == 7

    def test_unknown_kwargs_dropped(self, data_root: Path) -> None:
        dm = _module(data_root, _recursive_=False, batch_size=10)
        assert dm.config.batch_size == 10


class TestSetup:
    def test_partitions_and_counts(self, data_root: Path) -> None:
        dm = _module(data_root, batch_size=4)
        dm.prepare_data()
        dm.setup()
        train = dm.train_batches()
        assert train.num_samples == 30
        assert train.num_batches == 8
        assert dm.test_batches().num_samples == 20
        assert not dm.has_validation
        assert dm.held_out_batches().name == "test"

    def test_scaler_fit_on_training_partition(self, data_root: Path) -> None:
        """Statistics come from training pixels; held-out data reuses them."""
        dm = _module(data_root)
        dm.setup()
        assert dm.scaler.data_min == 0.0
        assert dm.scaler.data_max == 255.0
        for producer in (dm.train_batches(), dm.test_batches()):
            for batch in producer:
                assert batch["images"].min() >= 0.0
                assert batch["images"].max() <= 1.0

    def test_same_scaler_for_every_partition(self, data_root: Path) -> None:
        dm = _module(data_root)
        dm.setup()
        assert dm.train_batches().scaler is dm.scaler
        assert dm.test_batches().scaler is dm.scaler

    def test_held_out_is_unshuffled(self, data_root: Path) -> None:
        dm = _module(data_root, batch_size=5)
        dm.setup()
        labels = torch.cat([b["labels"] for b in dm.test_batches()])
        assert labels.tolist() == sorted(labels.tolist())

    def test_eval_batch_size_all(self, data_root: Path) -> None:
        dm = _module(data_root, batch_size=3, eval_batch_size="all", flatten=True)
        dm.setup()
        batches = list(dm.test_batches())
        assert len(batches) == 1
        assert batches[0]["images"].shape == (20, 784)

    def test_validation_split(self, data_root: Path) -> None:
        """Validation is carved from training; testing stays for the final pass."""
        dm = _module(data_root, validation_size=5)
        dm.setup()
        assert dm.has_validation
        assert dm.train_batches().num_samples == 25
        assert dm.val_batches().num_samples == 5
        assert dm.held_out_batches().name == "validation"
        assert dm.test_batches().num_samples == 20

    def test_validation_split_too_large(self, data_root: Path) -> None:
        dm = _module(data_root, validation_size=30)
        with pytest.raises(ValueError):
            dm.setup()

    def test_accessors_before_setup_raise(self, data_root: Path) -> None:
        dm = _module(data_root)
        with pytest.raises(RuntimeError):
            dm.train_batches()
        with pytest.raises(RuntimeError):
            dm.test_batches()
        with pytest.raises(RuntimeError):
            dm.val_batches()

    def test_setup_is_idempotent(self, data_root: Path) -> None:
        dm = _module(data_root)
        dm.setup()
        train = dm.train_batches()
        dm.setup("fit")
        assert dm.train_batches() is train


class TestLabelsMapping:
    def test_contents(self, data_root: Path) -> None:
        dm = _module(data_root, flatten=True)
        dm.setup()
        mapping = dm.labels_mapping()
        assert mapping["num_classes"] == 10
        assert mapping["idx_to_class"]["3"] == "3"
        assert mapping["normalization"]["data_max"] == 255.0
        assert mapping["image_shape"] == [1, 28, 28]
        assert mapping["flatten"] is True


class TestEmptyTraining:
    def test_zero_batches_and_empty_held_out(self, empty_training_root: Path) -> None:
        """Labels come from training only, so test images have no class to map to."""
        dm = _module(empty_training_root)
        dm.prepare_data()
        dm.setup()
        train = dm.train_batches()
        assert train.num_batches == 0
        assert train.exhausted
        assert list(train) == []
        assert dm.class_to_idx == {}
        assert not dm.scaler.is_fitted
        assert dm.held_out_batches().num_samples == 0

    def test_fit_scaler_before_setup_raises(self, data_root: Path) -> None:
        dm = _module(data_root)
        with pytest.raises(RuntimeError):
            dm._fit_scaler()
