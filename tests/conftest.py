"""Shared pytest fixtures for mnist_training tests."""

from collections.abc import Callable
from pathlib import Path

import pytest
import torch
from PIL import Image
from torch.utils.data import TensorDataset

CLASSES = [str(d) for d in range(10)]


def write_split(
    root: Path,
    split: str,
    per_class: int,
    classes: list[str] = CLASSES,
    size: int = 28,
) -> None:
    """Write ``per_class`` grayscale PNGs into ``root/split/<label>/``.

    Every image contains a 0 and a 255 pixel so the fitted min/max is
    exactly (0, 255); the background encodes the class.
    """
    for cls in classes:
        cls_dir = root / split / cls
        cls_dir.mkdir(parents=True, exist_ok=True)
        for i in range(per_class):
            img = Image.new("L", (size, size), color=20 * int(cls) + i % 10)
            img.putpixel((0, 0), 0)
            img.putpixel((size - 1, size - 1), 255)
            img.save(cls_dir / f"{cls}_{i:03d}.png")


@pytest.fixture()
def make_mnist_tree(tmp_path: Path) -> Callable[..., Path]:
    """Factory: ``data_root`` containing ``mnist_png/{training,testing}/<label>/``."""

    def _make(train_per_class: int = 3, test_per_class: int = 2) -> Path:
        extracted = tmp_path / "data" / "mnist_png"
        write_split(extracted, "training", train_per_class)
        write_split(extracted, "testing", test_per_class)
        return tmp_path / "data"

    return _make


@pytest.fixture()
def data_root(make_mnist_tree: Callable[..., Path]) -> Path:
    """Small tree: 30 training and 20 testing images over 10 classes."""
    return make_mnist_tree()


@pytest.fixture()
def tensor_dataset() -> Callable[[int], TensorDataset]:
    """Factory for in-memory datasets of ``n`` raw 1x28x28 images."""

    def _make(n: int) -> TensorDataset:
        gen = torch.Generator().manual_seed(0)
        images = torch.randint(0, 256, (n, 1, 28, 28), generator=gen).float()
        labels = torch.arange(n) % 10
        return TensorDataset(images, labels)

    return _make


@pytest.fixture()
def empty_training_root(tmp_path: Path) -> Path:
    """``training/`` exists but holds no class directories; ``testing/`` has 20 PNGs."""
    extracted = tmp_path / "data" / "mnist_png"
    (extracted / "training").mkdir(parents=True)
    write_split(extracted, "testing", 2)
    return tmp_path / "data"
