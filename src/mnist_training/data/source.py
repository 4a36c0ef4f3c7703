"""Dataset source: make sure the MNIST PNG corpus is present on disk.

The corpus is a tarball of ``training/<label>/*.png`` and
``testing/<label>/*.png`` trees.  Downloading and extraction use
torchvision's dataset utilities; this module only decides *whether* to call
them and translates their failures into the package's error taxonomy.
"""

from __future__ import annotations

import gzip
import shutil
import tarfile
import tempfile
import urllib.error
import zipfile
import zlib
from pathlib import Path

from loguru import logger
from torchvision.datasets.utils import download_url, extract_archive

from mnist_training.config import DatasetSourceConfig
from mnist_training.errors import CorruptArchive, ResourceUnavailable

TRAINING_SPLIT = "training"
TESTING_SPLIT = "testing"

_EXTRACT_ERRORS = (
    tarfile.TarError,
    zipfile.BadZipFile,
    gzip.BadGzipFile,
    zlib.error,
    EOFError,
    RuntimeError,
)


def is_extracted(extracted_root: Path) -> bool:
    """True when both split directories exist under ``extracted_root``."""
    return (extracted_root / TRAINING_SPLIT).is_dir() and (
        extracted_root / TESTING_SPLIT
    ).is_dir()


def ensure_dataset(config: DatasetSourceConfig) -> Path:
    """Return the extracted dataset root, downloading and extracting if needed.

    Idempotent: when ``<data_root>/<extracted_dir>`` already holds both
    splits, nothing is downloaded or extracted.

    Raises:
        ResourceUnavailable: the archive is absent locally and cannot be
            downloaded (network failure, ``download=False``, checksum
            mismatch).
        CorruptArchive: the archive cannot be extracted, or extraction does
            not produce the expected split directories.
    """
    data_root = Path(config.data_root)
    extracted_root = data_root / config.extracted_dir
    if is_extracted(extracted_root):
        logger.info(f"Dataset already present at {extracted_root}")
        return extracted_root

    archive_path = data_root / config.archive_name
    if not archive_path.is_file():
        _download(config, archive_path)
    else:
        logger.info(f"Using cached archive {archive_path}")

    _extract(archive_path, data_root, config.extracted_dir)
    logger.info(f"Dataset ready at {extracted_root}")
    return extracted_root


def _download(config: DatasetSourceConfig, archive_path: Path) -> None:
    if not config.download:
        raise ResourceUnavailable(
            f"{archive_path} not found and downloading is disabled"
        )

    archive_path.parent.mkdir(parents=True, exist_ok=True)
    logger.info(f"Downloading {config.url} to {archive_path}")
    try:
        download_url(
            config.url,
            str(archive_path.parent),
            filename=archive_path.name,
            md5=config.md5,
        )
    except (urllib.error.URLError, OSError, RuntimeError) as e:
        archive_path.unlink(missing_ok=True)
        raise ResourceUnavailable(f"Could not download {config.url}: {e}") from e
    logger.debug(f"Data downloaded from {config.url}")


def _extract(archive_path: Path, data_root: Path, extracted_dir: str) -> None:
    """Extract into a staging directory, then move the tree into place.

    ``<data_root>/<extracted_dir>`` only appears once the archive has been
    read completely and holds both splits.
    """
    extracted_root = data_root / extracted_dir
    logger.info(f"Extracting {archive_path} to {data_root}")
    with tempfile.TemporaryDirectory(dir=data_root, prefix=".extract-") as staging:
        try:
            extract_archive(str(archive_path), staging)
        except _EXTRACT_ERRORS as e:
            raise CorruptArchive(f"Failed to extract {archive_path}: {e}") from e

        staged_root = Path(staging) / extracted_dir
        if not is_extracted(staged_root):
            raise CorruptArchive(
                f"{archive_path} did not contain '{TRAINING_SPLIT}/' and "
                f"'{TESTING_SPLIT}/' under {extracted_dir}/"
            )
        if extracted_root.exists():
            logger.warning(f"Replacing incomplete dataset tree at {extracted_root}")
            shutil.rmtree(extracted_root)
        staged_root.replace(extracted_root)
