"""Folder scanning functionality."""

import logging
import os
import stat
from pathlib import Path
from typing import Iterable, Iterator

import xxhash

logger = logging.getLogger(__name__)


def _long_path(path: Path) -> str:
    """Convert path to long path format on Windows to handle paths > 260 chars."""
    path_str = str(path.resolve())
    if os.name == 'nt' and not path_str.startswith('\\\\?\\'):
        return '\\\\?\\' + path_str
    return path_str


def is_hidden(name: str) -> bool:
    """Return True for dot-files and dot-directories."""
    return name.startswith(".")


def compute_file_hash(file_path: Path, chunk_size: int = 65536) -> str:
    """Compute hash of a file using xxhash (fast hashing algorithm)."""
    hasher = xxhash.xxh64()
    with open(_long_path(file_path), 'rb') as f:
        while chunk := f.read(chunk_size):
            hasher.update(chunk)
    return hasher.hexdigest()


def _log_walk_error(error: OSError) -> None:
    logger.warning("Skipping unreadable entry %s: %s", error.filename, error.strerror or error)


def walk_files(root: Path) -> Iterator[Path]:
    """
    Lazily yield the absolute path of every regular file under root.

    Hidden files are skipped and hidden directories are not descended into.
    Directories themselves and symlinks are never yielded. Entries that
    cannot be read are logged and skipped instead of aborting the walk.

    Args:
        root: Folder to walk

    Yields:
        Absolute file paths, in directory-walk order
    """
    root = Path(root).absolute()
    if not root.is_dir():
        logger.warning("Not a directory, nothing to walk: %s", root)
        return

    for dirpath, dirnames, filenames in os.walk(root, onerror=_log_walk_error):
        # Prune in place so os.walk skips hidden directories
        dirnames[:] = sorted(d for d in dirnames if not is_hidden(d))
        for filename in sorted(filenames):
            if is_hidden(filename):
                continue
            abs_path = Path(dirpath) / filename
            try:
                mode = os.lstat(abs_path).st_mode
            except OSError as e:
                _log_walk_error(e)
                continue
            if stat.S_ISREG(mode):
                yield abs_path


def count_files(roots: Iterable[Path]) -> int:
    """Count the regular files under all roots (pre-pass for progress totals)."""
    return sum(1 for root in roots for _ in walk_files(root))


def folder_stats(root: Path) -> tuple[int, int]:
    """
    Scan a folder and return its total byte size and file count.

    Files whose size cannot be read still count, with zero bytes.
    """
    total_size = 0
    file_count = 0
    for file_path in walk_files(root):
        try:
            total_size += file_path.stat().st_size
        except OSError as e:
            _log_walk_error(e)
        file_count += 1
    return total_size, file_count


def relative_posix(file_path: Path, root: Path) -> str:
    """Relative path of file_path under root, using POSIX separators."""
    # POSIX-style paths for cross-platform consistency
    return Path(file_path).relative_to(root).as_posix()
