"""Pydantic frozen configuration models for mnist_training.

Every record is validated when it is constructed.  Topology problems and
out-of-range hyperparameters raise :class:`ConfigurationError` directly;
malformed types raise pydantic's ``ValidationError``, which
:func:`parse_config` converts at the Hydra seam.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ValidationError, field_validator, model_validator

from mnist_training.errors import ConfigurationError
from mnist_training.schedule import LearningRateSchedule

MNIST_PNG_URL = "https://github.com/myleott/mnist_png/raw/master/mnist_png.tar.gz"

LayerKind = Literal["convolution", "pooling", "dense", "output"]
Activation = Literal["identity", "relu", "sigmoid", "tanh", "softmax"]
Shape = tuple[int, ...]

_ConfigT = TypeVar("_ConfigT", bound=BaseModel)


def parse_config(cls: type[_ConfigT], data: Mapping[str, Any]) -> _ConfigT:
    """Validate ``data`` into ``cls``, reporting failures as ConfigurationError."""
    try:
        return cls.model_validate(dict(data))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid {cls.__name__}: {e}") from e


def _pair(value: Any) -> Any:
    """Accept ``5`` as shorthand for ``(5, 5)``."""
    if isinstance(value, int):
        return (value, value)
    return value


# ---------------------------------------------------------------------------
# Data
# ---------------------------------------------------------------------------


class DatasetSourceConfig(BaseModel, frozen=True):
    """Where the labeled image corpus lives and how to fetch it."""

    data_root: str
    url: str = MNIST_PNG_URL
    archive_name: str = "mnist_png.tar.gz"
    extracted_dir: str = "mnist_png"
    md5: str | None = None
    download: bool = True


class DataModuleConfig(BaseModel, frozen=True):
    """Configuration for MnistDataModule.

    ``eval_batch_size`` of ``None`` reuses ``batch_size``; ``"all"`` puts the
    whole held-out partition into a single batch.
    """

    data_root: str
    batch_size: int = 54
    eval_batch_size: int | Literal["all"] | None = None
    height: int = 28
    width: int = 28
    channels: int = 1
    num_classes: int = 10
    seed: int = 1234
    shuffle: bool = True
    reshuffle_each_epoch: bool = False
    flatten: bool = False
    feature_range: tuple[float, float] = (0.0, 1.0)
    validation_size: int = 0
    download: bool = True
    url: str = MNIST_PNG_URL
    archive_name: str = "mnist_png.tar.gz"
    extracted_dir: str = "mnist_png"
    md5: str | None = None
    progress: bool = True

    @model_validator(mode="after")
    def _check_ranges(self) -> DataModuleConfig:
        if self.batch_size < 1:
            raise ConfigurationError(f"batch_size must be >= 1, got {self.batch_size}")
        if isinstance(self.eval_batch_size, int) and self.eval_batch_size < 1:
            raise ConfigurationError(
                f"eval_batch_size must be >= 1, got {self.eval_batch_size}"
            )
        if min(self.height, self.width, self.channels, self.num_classes) < 1:
            raise ConfigurationError(
                "height, width, channels and num_classes must all be >= 1"
            )
        if self.channels not in (1, 3):
            raise ConfigurationError(f"channels must be 1 or 3, got {self.channels}")
        if self.validation_size < 0:
            raise ConfigurationError(
                f"validation_size must be >= 0, got {self.validation_size}"
            )
        lo, hi = self.feature_range
        if not lo < hi:
            raise ConfigurationError(f"feature_range must satisfy lo < hi, got {(lo, hi)}")
        return self

    @property
    def image_shape(self) -> Shape:
        return (self.channels, self.height, self.width)

    def source_config(self) -> DatasetSourceConfig:
        return DatasetSourceConfig(
            data_root=self.data_root,
            url=self.url,
            archive_name=self.archive_name,
            extracted_dir=self.extracted_dir,
            md5=self.md5,
            download=self.download,
        )


# ---------------------------------------------------------------------------
# Model topology
# ---------------------------------------------------------------------------


class LayerConfig(BaseModel, frozen=True):
    """One layer of a network topology.

    ``convolution`` needs ``kernel_size`` and ``out_channels``; ``pooling``
    needs ``kernel_size``; ``dense`` and ``output`` need ``units``.
    ``in_channels``/``in_features`` are optional declarations checked against
    the inferred input shape.
    """

    kind: LayerKind
    kernel_size: tuple[int, int] | None = None
    stride: tuple[int, int] = (1, 1)
    out_channels: int | None = None
    units: int | None = None
    in_channels: int | None = None
    in_features: int | None = None
    activation: Activation = "identity"
    pooling: Literal["max", "avg"] = "max"

    @field_validator("kernel_size", "stride", mode="before")
    @classmethod
    def _square(cls, v: Any) -> Any:
        return _pair(v)

    @model_validator(mode="after")
    def _check_required(self) -> LayerConfig:
        if self.kind in ("convolution", "pooling"):
            if self.kernel_size is None:
                raise ConfigurationError(f"{self.kind} layer requires kernel_size")
            if min(self.kernel_size) < 1 or min(self.stride) < 1:
                raise ConfigurationError(
                    f"{self.kind} layer kernel_size and stride must be >= 1"
                )
        if self.kind == "convolution" and (self.out_channels or 0) < 1:
            raise ConfigurationError("convolution layer requires out_channels >= 1")
        if self.kind in ("dense", "output") and (self.units or 0) < 1:
            raise ConfigurationError(f"{self.kind} layer requires units >= 1")
        return self


def infer_shapes(input_shape: Shape, layers: Sequence[LayerConfig]) -> list[Shape]:
    """Propagate ``input_shape`` through ``layers``.

    Returns the output shape of every layer, in order.  Spatial shapes are
    ``(C, H, W)``; dense outputs are ``(units,)``.  Convolutions and pooling
    use no padding: ``out = (in - kernel) // stride + 1``.

    Raises:
        ConfigurationError: on the first layer whose input does not fit.
    """
    shapes: list[Shape] = []
    shape = tuple(input_shape)
    for i, layer in enumerate(layers):
        where = f"layer {i} ({layer.kind})"
        if layer.kind in ("convolution", "pooling"):
            if len(shape) != 3:
                raise ConfigurationError(
                    f"{where} needs a (C, H, W) input but receives {shape}"
                )
            c, h, w = shape
            kh, kw = layer.kernel_size  # type: ignore[misc]
            sh, sw = layer.stride
            if kh > h or kw > w:
                raise ConfigurationError(
                    f"{where} kernel {(kh, kw)} does not fit input {shape}"
                )
            if layer.in_channels is not None and layer.in_channels != c:
                raise ConfigurationError(
                    f"{where} declares in_channels={layer.in_channels} "
                    f"but receives {c} channels"
                )
            out_c = layer.out_channels if layer.kind == "convolution" else c
            shape = (out_c, (h - kh) // sh + 1, (w - kw) // sw + 1)  # type: ignore[assignment]
        else:
            features = math.prod(shape)
            if layer.in_features is not None and layer.in_features != features:
                raise ConfigurationError(
                    f"{where} declares in_features={layer.in_features} "
                    f"but receives {features}"
                )
            shape = (layer.units,)  # type: ignore[assignment]
        shapes.append(shape)
    return shapes


class ModelConfig(BaseModel, frozen=True):
    """Network topology plus global hyperparameters.

    ``learning_rate_schedule`` is an association list of ``(step, rate)``
    pairs, looked up by floor through :attr:`schedule`.
    """

    name: str = "model"
    input_shape: tuple[int, int, int] = (1, 28, 28)
    num_classes: int = 10
    layers: tuple[LayerConfig, ...]
    seed: int = 1234
    weight_init: Literal["xavier", "relu", "zeros"] = "xavier"
    l2: float = 0.0
    momentum: float = 0.0
    nesterov: bool = False
    loss: Literal["negative_log_likelihood"] = "negative_log_likelihood"
    learning_rate_schedule: tuple[tuple[int, float], ...] = ((0, 0.01),)

    @field_validator("learning_rate_schedule", mode="before")
    @classmethod
    def _schedule_from_mapping(cls, v: Any) -> Any:
        if isinstance(v, Mapping):
            return tuple((int(k), float(r)) for k, r in v.items())
        return v

    @model_validator(mode="after")
    def _check_model(self) -> ModelConfig:
        if not self.layers:
            raise ConfigurationError("Model needs at least one layer")
        if min(self.input_shape) < 1:
            raise ConfigurationError(f"input_shape must be positive, got {self.input_shape}")
        if self.l2 < 0.0:
            raise ConfigurationError(f"l2 must be >= 0, got {self.l2}")
        if not 0.0 <= self.momentum < 1.0:
            raise ConfigurationError(f"momentum must be in [0, 1), got {self.momentum}")
        if self.nesterov and self.momentum == 0.0:
            raise ConfigurationError("nesterov requires momentum > 0")

        *hidden, last = self.layers
        if last.kind != "output":
            raise ConfigurationError(f"Last layer must be 'output', got '{last.kind}'")
        if any(layer.kind == "output" for layer in hidden):
            raise ConfigurationError("Only the last layer may be an 'output' layer")
        if last.units != self.num_classes:
            raise ConfigurationError(
                f"Output layer has {last.units} units but num_classes={self.num_classes}"
            )
        if self.loss == "negative_log_likelihood" and last.activation != "softmax":
            raise ConfigurationError(
                "negative_log_likelihood loss requires a softmax output activation"
            )

        infer_shapes(self.input_shape, self.layers)
        # Builds and validates the lookup table.
        _ = self.schedule
        return self

    @property
    def schedule(self) -> LearningRateSchedule:
        return LearningRateSchedule(self.learning_rate_schedule)

    @property
    def layer_shapes(self) -> list[Shape]:
        return infer_shapes(self.input_shape, self.layers)


def check_compatible(
    data: DataModuleConfig,
    model: ModelConfig,
    discovered_classes: int | None = None,
) -> None:
    """Raise ConfigurationError when the data cannot feed the model.

    Images must have the model's ``input_shape`` (flattened batches are
    reshaped back to it) and both sides must agree on ``num_classes``.
    ``discovered_classes`` is the number of label directories found on disk;
    more of them than output units would yield out-of-range targets.
    """
    if data.image_shape != model.input_shape:
        raise ConfigurationError(
            f"Data image shape {data.image_shape} does not match model "
            f"input_shape {model.input_shape}"
        )
    if data.num_classes != model.num_classes:
        raise ConfigurationError(
            f"Data num_classes={data.num_classes} does not match model "
            f"num_classes={model.num_classes}"
        )
    if discovered_classes is not None and discovered_classes > model.num_classes:
        raise ConfigurationError(
            f"Found {discovered_classes} class directories but the model has "
            f"{model.num_classes} outputs"
        )


# ---------------------------------------------------------------------------
# Trainer
# ---------------------------------------------------------------------------


class TrainerConfig(BaseModel, frozen=True):
    """Epoch count, score logging cadence and device selection."""

    max_epochs: int = 3
    score_interval: int = 10
    accelerator: Literal["auto", "cpu", "cuda", "mps"] = "auto"

    @model_validator(mode="after")
    def _check_ranges(self) -> TrainerConfig:
        if self.max_epochs < 1:
            raise ConfigurationError(f"max_epochs must be >= 1, got {self.max_epochs}")
        if self.score_interval < 0:
            raise ConfigurationError(
                f"score_interval must be >= 0, got {self.score_interval}"
            )
        return self
