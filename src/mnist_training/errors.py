"""Exception taxonomy for mnist_training.

Every error is fatal at the point where it is raised. Nothing in the
package retries or skips work after one of these.
"""


class MnistTrainingError(Exception):
    """Base class for all mnist_training errors."""


class ResourceUnavailable(MnistTrainingError):
    """The dataset archive could not be fetched and no local copy exists."""


class CorruptArchive(MnistTrainingError):
    """The dataset archive could not be extracted into the expected layout."""


class ConfigurationError(MnistTrainingError):
    """Invalid topology, hyperparameter or schedule lookup.

    Not a ``ValueError`` subclass, so pydantic validators propagate it
    unchanged instead of wrapping it in a ``ValidationError``.
    """


class ArtifactWriteError(MnistTrainingError, OSError):
    """The trained model artifact could not be written."""
