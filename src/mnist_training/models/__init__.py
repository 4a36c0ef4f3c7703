"""Classification model implementations."""

from mnist_training.models.base import BaseClassificationModel
from mnist_training.models.lenet import LeNet5Model
from mnist_training.models.softmax import SoftmaxRegressionModel

__all__ = [
    "BaseClassificationModel",
    "LeNet5Model",
    "SoftmaxRegressionModel",
]
