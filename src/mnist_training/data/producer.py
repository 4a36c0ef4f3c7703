"""Resettable, seeded batch iterator over an in-memory sample cache."""

from __future__ import annotations

import math
from typing import Protocol

import torch
from loguru import logger
from tqdm import tqdm

from mnist_training.data.scaler import MinMaxScaler
from mnist_training.types import ClassificationBatch

__all__ = ["BatchProducer", "SampleSource"]


class SampleSource(Protocol):
    """Any map-style dataset yielding ``(image tensor, int label)`` pairs."""

    def __len__(self) -> int: ...

    def __getitem__(self, idx: int) -> tuple[torch.Tensor, int]: ...


class BatchProducer:
    """Iterator of ClassificationBatch dicts over one dataset partition.

    The partition is read from ``dataset`` once, on first use, into a raw
    (unscaled) in-memory cache.  After that :meth:`reset` only rewinds a
    cursor; storage is never touched again.

    Ordering is a permutation drawn from a ``torch.Generator`` seeded with
    ``seed``.  The same permutation is replayed after every :meth:`reset`
    unless ``reshuffle_on_reset`` is set (the generator then advances, so a
    fixed seed still gives a reproducible sequence of epochs) or
    :meth:`reseed` is called.

    Exhaustion is a terminal state, not an error: :attr:`exhausted` turns
    True and ``__next__`` raises ``StopIteration`` until the next reset.

    Args:
        dataset: Sized map-style dataset of ``(tensor, int)`` samples.
        batch_size: Samples per batch.  ``None`` emits the whole partition as
            a single batch.  The last batch of an epoch may be shorter.
        shuffle: Permute the sample order.  ``False`` keeps dataset order.
        seed: Seed for the permutation generator.  ``None`` draws one.
        scaler: Fitted MinMaxScaler applied as each batch is materialized.
            May be assigned after construction (fit on the cache first).
        flatten: Emit images as ``(B, C*H*W)`` instead of ``(B, C, H, W)``.
        reshuffle_on_reset: Draw a fresh permutation on every reset.
        progress: Show a tqdm bar while building the cache.
        name: Used in log messages.
    """

    def __init__(
        self,
        dataset: SampleSource,
        batch_size: int | None,
        *,
        shuffle: bool = True,
        seed: int | None = None,
        scaler: MinMaxScaler | None = None,
        flatten: bool = False,
        reshuffle_on_reset: bool = False,
        progress: bool = False,
        name: str = "batches",
    ) -> None:
        if batch_size is not None and batch_size < 1:
            raise ValueError(f"batch_size must be >= 1 or None, got {batch_size}")
        self._dataset = dataset
        self._num_samples = len(dataset)
        self._batch_size = batch_size
        self.shuffle = shuffle
        self.scaler = scaler
        self.flatten = flatten
        self.reshuffle_on_reset = reshuffle_on_reset
        self.progress = progress
        self.name = name

        self._generator = torch.Generator()
        self._seed_generator(seed)
        self._order = self._draw_order()
        self._cursor = 0

        self._images: torch.Tensor | None = None
        self._labels: torch.Tensor | None = None

    # ------------------------------------------------------------------
    # Sizes
    # ------------------------------------------------------------------

    @property
    def num_samples(self) -> int:
        return self._num_samples

    @property
    def batch_size(self) -> int:
        """Effective batch size (whole partition when configured as None)."""
        if self._batch_size is None:
            return max(1, self._num_samples)
        return self._batch_size

    @property
    def num_batches(self) -> int:
        """Batches per epoch: ``ceil(num_samples / batch_size)``."""
        return math.ceil(self._num_samples / self.batch_size)

    def __len__(self) -> int:
        return self.num_batches

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    def _seed_generator(self, seed: int | None) -> None:
        if seed is None:
            self.seed = self._generator.seed()
        else:
            self.seed = seed
            self._generator.manual_seed(seed)

    def _draw_order(self) -> torch.Tensor:
        if self.shuffle:
            return torch.randperm(self._num_samples, generator=self._generator)
        return torch.arange(self._num_samples)

    def reset(self) -> None:
        """Rewind to the start of the partition for the next epoch."""
        if self.reshuffle_on_reset:
            self._order = self._draw_order()
        self._cursor = 0

    def reseed(self, seed: int | None) -> None:
        """Reseed the generator, draw a new order and rewind."""
        self._seed_generator(seed)
        self._order = self._draw_order()
        self._cursor = 0

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    @property
    def is_cached(self) -> bool:
        return self._images is not None

    def _ensure_cache(self) -> tuple[torch.Tensor, torch.Tensor]:
        if self._images is None or self._labels is None:
            logger.info(f"Caching {self._num_samples} samples for '{self.name}'")
            images: list[torch.Tensor] = []
            labels: list[int] = []
            for idx in tqdm(
                range(self._num_samples),
                desc=f"Cache {self.name}",
                unit="img",
                disable=not self.progress,
            ):
                image, label = self._dataset[idx]
                images.append(image)
                labels.append(int(label))
            self._images = torch.stack(images) if images else torch.empty(0)
            self._labels = torch.tensor(labels, dtype=torch.long)
        return self._images, self._labels

    def raw_images(self) -> torch.Tensor:
        """All cached images, unscaled, in dataset order."""
        images, _ = self._ensure_cache()
        return images

    # ------------------------------------------------------------------
    # Iteration
    # ------------------------------------------------------------------

    @property
    def exhausted(self) -> bool:
        return self._cursor >= self._num_samples

    def has_next(self) -> bool:
        return not self.exhausted

    def __iter__(self) -> BatchProducer:
        return self

    def __next__(self) -> ClassificationBatch:
        if self.exhausted:
            raise StopIteration
        images, labels = self._ensure_cache()
        end = min(self._cursor + self.batch_size, self._num_samples)
        idx = self._order[self._cursor:end]
        self._cursor = end

        batch_images = images[idx]
        if self.scaler is not None:
            batch_images = self.scaler.transform(batch_images)
        else:
            batch_images = batch_images.to(torch.float32)
        if self.flatten:
            batch_images = batch_images.reshape(batch_images.shape[0], -1)
        return {"images": batch_images, "labels": labels[idx]}

    def __repr__(self) -> str:
        return (
            f"BatchProducer(name={self.name!r}, samples={self._num_samples}, "
            f"batch_size={self.batch_size}, batches={self.num_batches}, "
            f"cursor={self._cursor})"
        )
