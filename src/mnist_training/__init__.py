"""Training and evaluation of small MNIST classifiers (LeNet-5, softmax regression)."""

__version__ = "0.0.1"
