"""Tests for atomic model artifacts."""

import os
from pathlib import Path
from typing import Any

import pytest
import torch

from mnist_training.errors import ArtifactWriteError
from mnist_training.models import LeNet5Model, SoftmaxRegressionModel
from mnist_training.persistence import artifact_name, load_artifact, save_artifact


class TestArtifactName:
    def test_encodes_run_configuration(self) -> None:
        assert artifact_name("lenet5", 1234, 3, 54) == "mnist-lenet5-seed1234-e3-b54.pt"


class TestSaveLoad:
    def test_round_trip_reproduces_outputs(self, tmp_path: Path) -> None:
        model = LeNet5Model(seed=5)
        mapping = {"class_to_idx": {"0": 0}}
        path = save_artifact(model, tmp_path / "lenet.pt", labels_mapping=mapping)

        restored, loaded_mapping = load_artifact(path)
        assert isinstance(restored, LeNet5Model)
        assert restored.config == model.config
        assert loaded_mapping == mapping

        x = torch.rand(2, 1, 28, 28)
        model.eval()
        assert torch.allclose(restored(x), model(x))

    def test_no_temp_file_left(self, tmp_path: Path) -> None:
        save_artifact(SoftmaxRegressionModel(), tmp_path / "a.pt")
        assert [p.name for p in tmp_path.iterdir()] == ["a.pt"]

    def test_creates_parent_directory(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "dir" / "a.pt"
        save_artifact(SoftmaxRegressionModel(), path)
        assert path.is_file()

    def test_overwrites_previous_artifact(self, tmp_path: Path) -> None:
        path = tmp_path / "a.pt"
        path.write_bytes(b"old")
        save_artifact(SoftmaxRegressionModel(), path)
        model, _ = load_artifact(path)
        assert isinstance(model, SoftmaxRegressionModel)

    def test_unsupported_version(self, tmp_path: Path) -> None:
        path = tmp_path / "a.pt"
        torch.save({"format_version": 99}, path)
        with pytest.raises(ValueError):
            load_artifact(path)


class TestWriteFailure:
    def test_failed_write_leaves_previous_artifact(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Temp file is removed and the old artifact survives a failed write."""
        path = tmp_path / "a.pt"
        path.write_bytes(b"old")

        def _boom(*args: Any, **kwargs: Any) -> None:
            raise OSError("disk full")

        monkeypatch.setattr(torch, "save", _boom)
        with pytest.raises(ArtifactWriteError):
            save_artifact(SoftmaxRegressionModel(), path)
        assert path.read_bytes() == b"old"
        assert [p.name for p in tmp_path.iterdir()] == ["a.pt"]

    def test_unwritable_directory(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        with pytest.raises(ArtifactWriteError):
            save_artifact(SoftmaxRegressionModel(), blocker / "a.pt")

    def test_is_an_os_error(self) -> None:
        assert issubclass(ArtifactWriteError, OSError)


class TestDurability:
    def test_temp_file_synced_before_rename(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        synced: list[int] = []
        real_fsync = os.fsync

        def _record(fd: int) -> None:
            synced.append(fd)
            real_fsync(fd)

        monkeypatch.setattr(os, "fsync", _record)
        save_artifact(SoftmaxRegressionModel(), tmp_path / "a.pt")
        assert len(synced) == 1
