"""Core merge logic."""

import logging
import os
import shutil
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence

from .access import FolderAccessManager
from .exceptions import AccessDeniedError, ConsolidationError, MergeError
from .models import MergeResult, RunState
from .naming import unique_path
from .scanner import compute_file_hash, count_files, walk_files

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]
StateCallback = Callable[[RunState], None]


def format_size(size: int) -> str:
    """Format file size in human-readable form."""
    for unit in ['B', 'KB', 'MB', 'GB']:
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"


def _long_path(path: Path) -> str:
    """Convert path to long path format on Windows to handle paths > 260 chars."""
    path_str = str(path.resolve())
    if os.name == 'nt' and not path_str.startswith('\\\\?\\'):
        return '\\\\?\\' + path_str
    return path_str


def copy_file(src: Path, dst: Path) -> None:
    """Copy a file, creating parent directories if needed."""
    # Use long path format on Windows
    dst_long = _long_path(dst)
    dst_parent = os.path.dirname(dst_long)
    os.makedirs(dst_parent, exist_ok=True)
    shutil.copy2(_long_path(src), dst_long)


def verify_copy(src: Path, dst: Path) -> None:
    """Raise MergeError if dst does not hold the same bytes as src."""
    if compute_file_hash(src) != compute_file_hash(dst):
        raise MergeError(f"Copy verification failed: {src} -> {dst}")


def is_within(path: Path, parent: Path) -> bool:
    """True if path is parent itself or lies below it."""
    path = Path(path).resolve()
    parent = Path(parent).resolve()
    return path == parent or parent in path.parents


def validate_sources(sources: Sequence[Path], output: Path) -> None:
    """
    Check that the sources exist and are disjoint from the output location.

    Raises:
        ConsolidationError: No sources, a missing source, or a source that
            contains or lies inside the output
    """
    if not sources:
        raise ConsolidationError("No source folders selected")
    for source in sources:
        if not source.is_dir():
            raise ConsolidationError(f"Source folder does not exist: {source}")
        if is_within(output, source) or is_within(source, output):
            raise ConsolidationError(
                f"Source folder and destination overlap: {source} / {output}"
            )


def count_source_files(sources: Iterable[Path], access: FolderAccessManager) -> int:
    """Pre-pass file count over all sources, each under read access."""
    total = 0
    for source in sources:
        with access.access(source):
            total += count_files([source])
    return total


def delete_folders(
    folders: Iterable[Path],
    access: FolderAccessManager
) -> tuple[list[Path], list[tuple[Path, str]]]:
    """
    Recursively delete each folder, best-effort.

    A folder that fails to delete is logged and recorded; the remaining
    folders are still processed.

    Returns:
        Tuple of (deleted folders, list of (folder, error message))
    """
    deleted = []
    failed = []
    for folder in folders:
        try:
            with access.access(folder, for_writing=True):
                shutil.rmtree(folder)
        except (OSError, AccessDeniedError) as e:
            logger.warning("Could not delete original folder %s: %s", folder, e)
            failed.append((folder, str(e)))
        else:
            logger.info("Deleted original folder %s", folder)
            deleted.append(folder)
    return deleted, failed


def merge_folders(
    sources: Sequence[Path],
    destination: Path,
    folder_name: str,
    *,
    delete_originals: bool = False,
    replace_existing: bool = False,
    verify: bool = False,
    access: Optional[FolderAccessManager] = None,
    on_progress: Optional[ProgressCallback] = None,
    on_state: Optional[StateCallback] = None,
) -> MergeResult:
    """
    Merge several source folders into destination/folder_name.

    Every regular, non-hidden file keeps its path relative to its source
    root. A file whose target already exists is written under the next free
    _1, _2, ... name instead, so nothing is overwritten or dropped.

    The run stops at the first copy failure. Files copied before the failure
    stay where they are.

    Args:
        sources: Source folders, merged in order
        destination: Folder that receives the merged folder
        folder_name: Name of the merged folder inside destination
        delete_originals: Delete the source folders after a successful merge
        replace_existing: Remove an existing destination/folder_name first
        verify: Compare xxhash digests of every source file and its copy
        access: Folder grants; everything is allowed when omitted
        on_progress: Called as on_progress(processed, total) after every file
        on_state: Called on every state change

    Returns:
        MergeResult describing the merged folder; total_size counts the
        bytes copied by this run only

    Raises:
        ConsolidationError: Invalid sources or folder name
        AccessDeniedError: Missing grant for a source or the destination
        MergeError: Copy, directory creation or verification failure
    """
    access = access or FolderAccessManager.unrestricted()
    sources = [Path(s).absolute() for s in sources]
    destination = Path(destination).absolute()

    if not folder_name or folder_name in (".", "..") or Path(folder_name).name != folder_name:
        raise ConsolidationError(f"Invalid folder name: {folder_name!r}")
    target = destination / folder_name
    validate_sources(sources, target)

    if on_state:
        on_state(RunState.SCANNING)
    total = count_source_files(sources, access)
    logger.info("Merging %d files from %d folders into %s", total, len(sources), target)

    processed = 0
    written = 0
    try:
        with access.access(destination, for_writing=True):
            if replace_existing and target.exists():
                logger.info("Removing existing folder %s", target)
                shutil.rmtree(target)
            target.mkdir(parents=True, exist_ok=True)

            if on_state:
                on_state(RunState.COPYING)
            if on_progress:
                on_progress(processed, total)

            for source in sources:
                with access.access(source):
                    for file_path in walk_files(source):
                        dst = target / file_path.relative_to(source)
                        if dst.exists():
                            dst = unique_path(dst)
                            logger.debug("Name collision, writing %s", dst)
                        copy_file(file_path, dst)
                        if verify:
                            verify_copy(file_path, dst)
                        written += dst.stat().st_size
                        processed += 1
                        if on_progress:
                            on_progress(processed, total)
    except (OSError, shutil.Error) as e:
        logger.error("Merge aborted after %d of %d files: %s", processed, total, e)
        raise MergeError(str(e)) from e

    # Only the bytes this run wrote; files already in target are not counted
    result = MergeResult(destination=target, item_count=processed, total_size=written)

    if delete_originals:
        result.deleted_folders, result.failed_deletions = delete_folders(sources, access)

    logger.info("Merged %d files into %s", processed, target)
    return result
