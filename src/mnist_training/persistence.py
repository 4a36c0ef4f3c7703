"""Single-file model artifacts: topology + parameters, written atomically."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any

import torch
from hydra.utils import get_class
from loguru import logger

from mnist_training.config import ModelConfig
from mnist_training.errors import ArtifactWriteError

if TYPE_CHECKING:
    from mnist_training.models.base import BaseClassificationModel

FORMAT_VERSION = 1


def artifact_name(model_name: str, seed: int, epochs: int, batch_size: int) -> str:
    """Deterministic artifact file name for a run configuration."""
    return f"mnist-{model_name}-seed{seed}-e{epochs}-b{batch_size}.pt"


def save_artifact(
    model: BaseClassificationModel,
    path: Path,
    labels_mapping: dict[str, Any] | None = None,
) -> Path:
    """Write topology, parameters and label mapping to ``path``.

    The payload goes to a temp file in the destination directory and is
    renamed over ``path`` only once fully written.  On failure the temp file
    is removed and any previous artifact at ``path`` is left untouched.

    Raises:
        ArtifactWriteError: the directory or file could not be written.
    """
    path = Path(path)
    cls = type(model)
    payload = {
        "format_version": FORMAT_VERSION,
        "model_class": f"{cls.__module__}.{cls.__name__}",
        "topology": model.config.model_dump(mode="json"),
        "state_dict": {k: v.detach().cpu() for k, v in model.state_dict().items()},
        "labels_mapping": labels_mapping,
    }

    tmp_path: Path | None = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            mode="wb",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as tmp_fd:
            tmp_path = Path(tmp_fd.name)
            torch.save(payload, tmp_fd)
            tmp_fd.flush()
            os.fsync(tmp_fd.fileno())
        tmp_path.replace(path)
    except Exception as e:
        if tmp_path is not None:
            tmp_path.unlink(missing_ok=True)
        raise ArtifactWriteError(f"Failed to write model artifact {path}: {e}") from e

    logger.info(f"Saved model artifact to {path}")
    return path


def load_artifact(path: Path) -> tuple[BaseClassificationModel, dict[str, Any] | None]:
    """Rebuild a model from an artifact written by :func:`save_artifact`.

    Returns:
        The model (on CPU, eval mode) and the stored labels mapping.
    """
    payload = torch.load(Path(path), map_location="cpu", weights_only=False)
    version = payload.get("format_version")
    if version != FORMAT_VERSION:
        raise ValueError(f"Unsupported artifact format_version: {version!r}")

    config = ModelConfig.model_validate(payload["topology"])
    model_cls = get_class(payload["model_class"])
    model: BaseClassificationModel = model_cls.from_config(config)
    model.load_state_dict(payload["state_dict"])
    model.eval()
    return model, payload["labels_mapping"]
