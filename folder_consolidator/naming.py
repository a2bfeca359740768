"""Collision-free file naming."""

import os
from pathlib import Path


def split_name(filename: str) -> tuple[str, str]:
    """
    Split a filename into base and extension.

    Only the final suffix counts as the extension, and a name without one
    keeps the whole name as its base.

    >>> split_name("archive.tar.gz")
    ('archive.tar', '.gz')
    >>> split_name("README")
    ('README', '')
    """
    return os.path.splitext(filename)


def unique_name(filename: str, directory: Path) -> str:
    """
    Return a filename that does not exist yet in directory.

    If filename is free it is returned unchanged; otherwise _1, _2, ... is
    inserted before the extension and the lowest free number wins.

    Args:
        filename: Candidate file name
        directory: Directory the file will be written into

    Returns:
        A name guaranteed not to exist in directory at the time of the call
    """
    directory = Path(directory)
    if not (directory / filename).exists():
        return filename

    base, ext = split_name(filename)
    counter = 1
    while True:
        candidate = f"{base}_{counter}{ext}"
        if not (directory / candidate).exists():
            return candidate
        counter += 1


def unique_path(path: Path) -> Path:
    """Apply unique_name to a full target path."""
    path = Path(path)
    return path.parent / unique_name(path.name, path.parent)
