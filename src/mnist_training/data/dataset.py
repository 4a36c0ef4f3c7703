"""Directory-per-class image dataset: ``<split>/<label>/*.png``."""

from pathlib import Path

import torch
from loguru import logger
from PIL import Image
from torch.utils.data import Dataset
from torchvision.transforms import v2

from mnist_training.data.utils import IMAGE_EXTENSIONS, get_files


class ImageFolderDataset(Dataset[tuple[torch.Tensor, int]]):
    """Labeled images discovered from a directory-per-class layout.

    The label of an image is the name of its parent directory, mapped through
    ``class_to_idx``.  Directories whose name is not in the mapping are
    skipped with a warning.  Samples are listed in sorted path order; any
    shuffling is the BatchProducer's job.

    Pixels are returned raw (``0..255`` as float32), resized to
    ``(height, width)``.  Scaling into a feature range happens once, in the
    BatchProducer, with statistics fit on the training partition.

    Args:
        root: Split directory (e.g. ``mnist_png/training``).
        class_to_idx: Mapping from label directory name to integer.
            MUST be built from the training split and shared across splits.
        height: Output image height.
        width: Output image width.
        channels: 1 for grayscale, 3 for RGB.
    """

    def __init__(
        self,
        root: Path,
        class_to_idx: dict[str, int],
        height: int = 28,
        width: int = 28,
        channels: int = 1,
    ) -> None:
        self.root = root
        self.class_to_idx = class_to_idx
        self.channels = channels
        self.transform = v2.Compose([
            v2.Resize((height, width)),
            v2.ToImage(),
            v2.ToDtype(torch.float32, scale=False),
        ])

        self.samples: list[tuple[Path, int]] = []
        skipped = 0
        for path in get_files(root, IMAGE_EXTENSIONS):
            label = path.parent.name
            if label not in class_to_idx:
                skipped += 1
                continue
            self.samples.append((path, class_to_idx[label]))
        if skipped:
            logger.warning(f"Skipped {skipped} image(s) with unknown labels under {root}")

        logger.debug(
            f"ImageFolderDataset: {len(self.samples)} samples, "
            f"{len(class_to_idx)} classes under {root}"
        )

    def __len__(self) -> int:
        return len(self.samples)

    def __getitem__(self, idx: int) -> tuple[torch.Tensor, int]:
        img_path, label = self.samples[idx]
        with Image.open(img_path) as img:
            img = img.convert("L" if self.channels == 1 else "RGB")
            tensor = self.transform(img).as_subclass(torch.Tensor)
        return tensor, label
