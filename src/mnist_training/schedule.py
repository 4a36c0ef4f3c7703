"""Iteration-indexed learning-rate schedule with floor lookup."""

from __future__ import annotations

from bisect import bisect_right
from collections.abc import Iterable, Mapping

from loguru import logger

from mnist_training.errors import ConfigurationError


class LearningRateSchedule:
    """Ordered ``step -> learning rate`` table.

    The rate in effect at a given global step is the entry with the greatest
    key ``<= step``.  Keys are kept sorted so the lookup is a predecessor
    search.  Asking for a step before the first key is a configuration error,
    never a silent default.

    Args:
        entries: Mapping of step to rate, or an iterable of ``(step, rate)``
            pairs.  Must be non-empty, with unique non-negative steps and
            strictly positive rates.
    """

    def __init__(
        self, entries: Mapping[int, float] | Iterable[tuple[int, float]]
    ) -> None:
        pairs = list(entries.items()) if isinstance(entries, Mapping) else list(entries)
        if not pairs:
            raise ConfigurationError("Learning-rate schedule must not be empty")

        steps = [int(step) for step, _ in pairs]
        if len(set(steps)) != len(steps):
            raise ConfigurationError(f"Duplicate steps in learning-rate schedule: {steps}")

        ordered = sorted((int(step), float(rate)) for step, rate in pairs)
        for step, rate in ordered:
            if step < 0:
                raise ConfigurationError(f"Schedule step must be >= 0, got {step}")
            if rate <= 0.0:
                raise ConfigurationError(
                    f"Learning rate must be > 0, got {rate} at step {step}"
                )

        self._steps = [step for step, _ in ordered]
        self._rates = [rate for _, rate in ordered]

        if any(b > a for a, b in zip(self._rates, self._rates[1:])):
            logger.warning(
                f"Learning-rate schedule is not monotonically non-increasing: "
                f"{self.as_pairs()}"
            )

    @classmethod
    def constant(cls, rate: float) -> LearningRateSchedule:
        """Single-entry schedule starting at step 0."""
        return cls([(0, rate)])

    def learning_rate_at(self, step: int) -> float:
        """Return the rate of the greatest schedule key ``<= step``."""
        idx = bisect_right(self._steps, step) - 1
        if idx < 0:
            raise ConfigurationError(
                f"No learning rate defined for step {step}; "
                f"schedule starts at step {self._steps[0]}"
            )
        return self._rates[idx]

    @property
    def initial_rate(self) -> float:
        return self._rates[0]

    def as_pairs(self) -> list[tuple[int, float]]:
        return list(zip(self._steps, self._rates))

    def __len__(self) -> int:
        return len(self._steps)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LearningRateSchedule):
            return NotImplemented
        return self.as_pairs() == other.as_pairs()

    def __repr__(self) -> str:
        return f"LearningRateSchedule({dict(self.as_pairs())!r})"
