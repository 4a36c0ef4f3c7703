"""Tests for ImageFolderDataset and directory helpers."""

from pathlib import Path

import torch
from PIL import Image

from mnist_training.data.dataset import ImageFolderDataset
from mnist_training.data.utils import IMAGE_EXTENSIONS, get_files, list_class_dirs


class TestUtils:
    def test_get_files_filters_and_sorts(self, tmp_path: Path) -> None:
        (tmp_path / "b").mkdir()
        (tmp_path / "a").mkdir()
        (tmp_path / "b" / "x.PNG").touch()
        (tmp_path / "a" / "y.png").touch()
        (tmp_path / "a" / "notes.txt").touch()
        files = get_files(tmp_path, IMAGE_EXTENSIONS)
        assert files == [tmp_path / "a" / "y.png", tmp_path / "b" / "x.PNG"]

    def test_get_files_missing_root(self, tmp_path: Path) -> None:
        assert get_files(tmp_path / "missing", IMAGE_EXTENSIONS) == []

    def test_list_class_dirs(self, data_root: Path) -> None:
        classes = list_class_dirs(data_root / "mnist_png" / "training")
        assert classes == [str(d) for d in range(10)]


class TestImageFolderDataset:
    def test_length_and_labels(self, data_root: Path) -> None:
        class_to_idx = {str(d): d for d in range(10)}
        ds = ImageFolderDataset(data_root / "mnist_png" / "training", class_to_idx)
        assert len(ds) == 30
        assert sorted({label for _, label in ds.samples}) == list(range(10))

    def test_item_is_raw_pixels(self, data_root: Path) -> None:
        ds = ImageFolderDataset(data_root / "mnist_png" / "testing", {"3": 3})
        image, label = ds[0]
        assert label == 3
        assert image.shape == (1, 28, 28)
        assert image.dtype == torch.float32
        assert type(image) is torch.Tensor
        assert image.max().item() == 255.0
        assert image.min().item() == 0.0

    def test_unknown_labels_skipped(self, data_root: Path) -> None:
        ds = ImageFolderDataset(data_root / "mnist_png" / "training", {"0": 0, "1": 1})
        assert len(ds) == 6

    def test_resize(self, tmp_path: Path) -> None:
        cls_dir = tmp_path / "7"
        cls_dir.mkdir()
        Image.new("L", (32, 32), color=9).save(cls_dir / "img.png")
        ds = ImageFolderDataset(tmp_path, {"7": 0}, height=28, width=28)
        image, _ = ds[0]
        assert image.shape == (1, 28, 28)
