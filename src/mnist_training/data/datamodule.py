"""LightningDataModule for the MNIST PNG corpus."""

from pathlib import Path
from typing import Any

import lightning as L
import torch
from loguru import logger
from torch.utils.data import Dataset, random_split

from mnist_training.config import DataModuleConfig
from mnist_training.data.dataset import ImageFolderDataset
from mnist_training.data.producer import BatchProducer
from mnist_training.data.scaler import MinMaxScaler
from mnist_training.data.source import TESTING_SPLIT, TRAINING_SPLIT, ensure_dataset
from mnist_training.data.utils import list_class_dirs


class MnistDataModule(L.LightningDataModule):
    """Data wiring for MNIST: source, partitions, scaler and batch producers.

    Reads ``<data_root>/<extracted_dir>/{training,testing}/<label>/*.png``.
    ``prepare_data()`` downloads/extracts the archive when needed.
    ``setup()`` builds the partitions and fits the MinMaxScaler on the
    training partition only; the same scaler instance is handed to the
    validation and test producers.

    When ``validation_size > 0`` that many samples are carved out of the
    training directory with a seeded split and become the held-out partition
    used during training; the testing directory is then kept for a final
    evaluation.

    class_to_idx is built from the training directory names, sorted, and
    shared across all partitions.

    Args:
        config: DataModuleConfig frozen model. If provided, flat kwargs are
            ignored.
        data_root: Dataset root (used when config is None, e.g. Hydra).
        **kwargs: Remaining DataModuleConfig fields, plus extra Hydra-injected
            keys (_target_, _recursive_, etc.), which are dropped.
    """

    def __init__(
        self,
        config: DataModuleConfig | None = None,
        *,
        data_root: str = "",
        **kwargs: Any,
    ) -> None:
        super().__init__()
        if config is not None:
            self._config = config
        else:
            fields = {k: v for k, v in kwargs.items() if k in DataModuleConfig.model_fields}
            self._config = DataModuleConfig(data_root=data_root, **fields)

        self._extracted_root = Path(self._config.data_root) / self._config.extracted_dir
        self._class_to_idx: dict[str, int] | None = None
        self.scaler = MinMaxScaler(self._config.feature_range)

        self._train_dataset: Dataset[tuple[torch.Tensor, int]] | None = None
        self._val_dataset: Dataset[tuple[torch.Tensor, int]] | None = None
        self._test_dataset: ImageFolderDataset | None = None
        self._train_batches: BatchProducer | None = None

    @property
    def config(self) -> DataModuleConfig:
        return self._config

    @property
    def dataset_root(self) -> Path:
        return self._extracted_root

    # ------------------------------------------------------------------
    # Class mapping: built from the training split only, sorted
    # ------------------------------------------------------------------

    @property
    def class_to_idx(self) -> dict[str, int]:
        """Sorted class_to_idx built from training directory names.

        Built lazily on first access and only cached once the training
        directory exists, so it is safe to call before prepare_data().
        """
        if self._class_to_idx is None:
            classes = list_class_dirs(self._extracted_root / TRAINING_SPLIT)
            if not classes:
                return {}
            self._class_to_idx = {cls: i for i, cls in enumerate(classes)}
            logger.info(f"Built class_to_idx: {len(classes)} classes")
            if len(classes) != self._config.num_classes:
                logger.warning(
                    f"Found {len(classes)} class directories, "
                    f"expected num_classes={self._config.num_classes}"
                )
        return self._class_to_idx

    @property
    def num_classes(self) -> int:
        return len(self.class_to_idx)

    # ------------------------------------------------------------------
    # LightningDataModule lifecycle
    # ------------------------------------------------------------------

    def prepare_data(self) -> None:
        """Ensure the corpus is on disk (download + extract if missing)."""
        ensure_dataset(self._config.source_config())

    def setup(self, stage: str | None = None) -> None:
        """Instantiate partitions for the given stage.

        Args:
            stage: "fit", "test", or None (all stages). The scaler is always
                fit on the training partition, so "test" alone still reads it.
        """
        cfg = self._config
        if self._train_batches is None:
            full_train = self._folder(TRAINING_SPLIT)
            if not self.class_to_idx:
                logger.warning(
                    f"No class directories under {self._extracted_root / TRAINING_SPLIT}; "
                    "training and held-out partitions will be empty"
                )
            if cfg.validation_size > 0:
                if cfg.validation_size >= len(full_train):
                    raise ValueError(
                        f"validation_size={cfg.validation_size} leaves no training "
                        f"samples out of {len(full_train)}"
                    )
                train_part, val_part = random_split(
                    full_train,
                    [len(full_train) - cfg.validation_size, cfg.validation_size],
                    generator=torch.Generator().manual_seed(cfg.seed),
                )
                self._train_dataset = train_part
                self._val_dataset = val_part
            else:
                self._train_dataset = full_train

            self._train_batches = BatchProducer(
                self._train_dataset,  # type: ignore[arg-type]
                cfg.batch_size,
                shuffle=cfg.shuffle,
                seed=cfg.seed,
                flatten=cfg.flatten,
                reshuffle_on_reset=cfg.reshuffle_each_epoch,
                progress=cfg.progress,
                name="train",
            )
            self._fit_scaler()
            n_val = len(self._val_dataset) if self._val_dataset is not None else 0  # type: ignore[arg-type]
            logger.info(
                f"Setup fit: train={self._train_batches.num_samples}, val={n_val} samples"
            )

        if stage in ("test", None) and self._test_dataset is None:
            self._test_dataset = self._folder(TESTING_SPLIT)
            logger.info(f"Setup test: {len(self._test_dataset)} samples")

    def _folder(self, split: str) -> ImageFolderDataset:
        cfg = self._config
        return ImageFolderDataset(
            root=self._extracted_root / split,
            class_to_idx=self.class_to_idx,
            height=cfg.height,
            width=cfg.width,
            channels=cfg.channels,
        )

    def _fit_scaler(self) -> None:
        """Fit min/max on the raw training pixels, then attach the scaler."""
        if self._train_batches is None:
            raise RuntimeError("Call setup('fit') before fitting the scaler")
        if self._train_batches.num_samples == 0:
            logger.warning("Training partition is empty; scaler left unfitted")
            return
        self.scaler.fit_producer(self._train_batches)
        self._train_batches.scaler = self.scaler
        logger.info(
            f"Fit pixel scaler on training data: min={self.scaler.data_min}, "
            f"max={self.scaler.data_max} -> {self.scaler.feature_range}"
        )

    # ------------------------------------------------------------------
    # Batch producers
    # ------------------------------------------------------------------

    def _eval_batch_size(self) -> int | None:
        size = self._config.eval_batch_size
        if size == "all":
            return None
        return self._config.batch_size if size is None else size

    def _held_out_producer(
        self, dataset: Dataset[tuple[torch.Tensor, int]], name: str
    ) -> BatchProducer:
        cfg = self._config
        return BatchProducer(
            dataset,  # type: ignore[arg-type]
            self._eval_batch_size(),
            shuffle=False,
            scaler=self.scaler if self.scaler.is_fitted else None,
            flatten=cfg.flatten,
            progress=cfg.progress,
            name=name,
        )

    def train_batches(self) -> BatchProducer:
        """Training producer (the same instance across epochs)."""
        if self._train_batches is None:
            raise RuntimeError("Call setup('fit') first")
        return self._train_batches

    def val_batches(self) -> BatchProducer:
        if self._val_dataset is None:
            raise RuntimeError("No validation partition: set validation_size > 0")
        return self._held_out_producer(self._val_dataset, "validation")

    def test_batches(self) -> BatchProducer:
        if self._test_dataset is None:
            raise RuntimeError("Call setup('test') first")
        return self._held_out_producer(self._test_dataset, "test")

    def held_out_batches(self) -> BatchProducer:
        """Held-out producer evaluated after every training epoch."""
        if self._val_dataset is not None:
            return self.val_batches()
        return self.test_batches()

    @property
    def has_validation(self) -> bool:
        return self._val_dataset is not None

    # ------------------------------------------------------------------
    # Labels mapping (persisted alongside model parameters)
    # ------------------------------------------------------------------

    def labels_mapping(self) -> dict[str, Any]:
        """class_to_idx, idx_to_class and scaler statistics, JSON-friendly."""
        return {
            "num_classes": self.num_classes,
            "class_to_idx": self.class_to_idx,
            "idx_to_class": {str(v): k for k, v in self.class_to_idx.items()},
            "normalization": self.scaler.state_dict(),
            "image_shape": list(self._config.image_shape),
            "flatten": self._config.flatten,
        }

