"""Utility functions for the data pipeline."""

from pathlib import Path

IMAGE_EXTENSIONS: tuple[str, ...] = (".png", ".jpg", ".jpeg", ".bmp", ".gif")


def get_files(root: Path, extensions: tuple[str, ...]) -> list[Path]:
    """Recursively find files matching extensions under root.

    Args:
        root: Directory to search recursively.
        extensions: Tuple of lowercase extensions including dot
            (e.g., (".png", ".jpg")).

    Returns:
        Sorted list of matching file paths. Empty if root does not exist.
    """
    if not root.is_dir():
        return []
    return sorted(
        p for p in root.rglob("*") if p.is_file() and p.suffix.lower() in extensions
    )


def list_class_dirs(split_root: Path) -> list[str]:
    """Sorted names of the per-class subdirectories under a split directory."""
    if not split_root.is_dir():
        return []
    return sorted(p.name for p in split_root.iterdir() if p.is_dir())
