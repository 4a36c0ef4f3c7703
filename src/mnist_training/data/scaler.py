"""Min-max pixel scaling fit on the training partition."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

import torch
from loguru import logger

from mnist_training.errors import ConfigurationError

if TYPE_CHECKING:
    from mnist_training.data.producer import BatchProducer


class MinMaxScaler:
    """Linear rescaling ``x' = (x - min) / (max - min)`` into ``feature_range``.

    ``min``/``max`` are global over all pixels of the data passed to
    :meth:`fit` (or accumulated with :meth:`partial_fit`).  Fit once on the
    training partition and reuse the same instance, unmodified, for every
    other partition.

    Args:
        feature_range: ``(lo, hi)`` output range, ``lo < hi``.
    """

    def __init__(self, feature_range: tuple[float, float] = (0.0, 1.0)) -> None:
        lo, hi = float(feature_range[0]), float(feature_range[1])
        if not lo < hi:
            raise ConfigurationError(
                f"feature_range must satisfy lo < hi, got {feature_range}"
            )
        self.feature_range = (lo, hi)
        self.data_min: float | None = None
        self.data_max: float | None = None

    @property
    def is_fitted(self) -> bool:
        return self.data_min is not None and self.data_max is not None

    def partial_fit(self, images: torch.Tensor) -> MinMaxScaler:
        """Widen the running min/max with another chunk of raw pixels."""
        if images.numel() == 0:
            return self
        lo, hi = float(images.min()), float(images.max())
        self.data_min = lo if self.data_min is None else min(self.data_min, lo)
        self.data_max = hi if self.data_max is None else max(self.data_max, hi)
        return self

    def fit(self, images: torch.Tensor | Iterable[torch.Tensor]) -> MinMaxScaler:
        """Fit min/max on a tensor or an iterable of tensors.

        Raises:
            ValueError: if no pixels were seen.
        """
        self.data_min = None
        self.data_max = None
        chunks = [images] if isinstance(images, torch.Tensor) else images
        for chunk in chunks:
            self.partial_fit(chunk)
        if not self.is_fitted:
            raise ValueError("Cannot fit MinMaxScaler on empty data")
        if self.data_min == self.data_max:
            logger.warning(
                f"MinMaxScaler fit on constant data (value={self.data_min}); "
                "all outputs will equal the lower bound of the feature range"
            )
        logger.debug(f"MinMaxScaler fit: min={self.data_min}, max={self.data_max}")
        return self

    def fit_producer(self, producer: BatchProducer) -> MinMaxScaler:
        """Fit on the raw cached images of a producer (read once, unscaled)."""
        return self.fit(producer.raw_images())

    def _check_fitted(self) -> tuple[float, float]:
        if self.data_min is None or self.data_max is None:
            raise RuntimeError("Call fit() before transform()")
        return self.data_min, self.data_max

    def transform(self, images: torch.Tensor) -> torch.Tensor:
        """Map raw pixels into ``feature_range``. Returns a new float tensor."""
        data_min, data_max = self._check_fitted()
        lo, hi = self.feature_range
        span = data_max - data_min
        if span == 0.0:
            return torch.full_like(images, lo, dtype=torch.float32)
        scaled = (images.to(torch.float32) - data_min) / span
        return scaled * (hi - lo) + lo

    def inverse_transform(self, images: torch.Tensor) -> torch.Tensor:
        """Map scaled values back to the raw pixel range."""
        data_min, data_max = self._check_fitted()
        lo, hi = self.feature_range
        return (images - lo) / (hi - lo) * (data_max - data_min) + data_min

    def state_dict(self) -> dict[str, Any]:
        return {
            "feature_range": list(self.feature_range),
            "data_min": self.data_min,
            "data_max": self.data_max,
        }

    @classmethod
    def from_state_dict(cls, state: dict[str, Any]) -> MinMaxScaler:
        scaler = cls(tuple(state["feature_range"]))  # type: ignore[arg-type]
        scaler.data_min = state["data_min"]
        scaler.data_max = state["data_max"]
        return scaler

    def __repr__(self) -> str:
        return (
            f"MinMaxScaler(feature_range={self.feature_range}, "
            f"min={self.data_min}, max={self.data_max})"
        )
