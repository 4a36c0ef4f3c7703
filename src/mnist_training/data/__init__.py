"""Data pipeline for mnist_training."""

from mnist_training.data.datamodule import MnistDataModule
from mnist_training.data.dataset import ImageFolderDataset
from mnist_training.data.producer import BatchProducer
from mnist_training.data.scaler import MinMaxScaler
from mnist_training.data.source import ensure_dataset

__all__ = [
    "BatchProducer",
    "ImageFolderDataset",
    "MinMaxScaler",
    "MnistDataModule",
    "ensure_dataset",
]
