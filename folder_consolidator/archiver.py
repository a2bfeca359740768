"""Compress several folders into one zip archive."""

import logging
import zipfile
from pathlib import Path
from typing import Optional, Sequence

from .access import FolderAccessManager
from .exceptions import ArchiveError, ConsolidationError
from .merger import (
    ProgressCallback,
    StateCallback,
    count_source_files,
    delete_folders,
    validate_sources,
)
from .models import ArchiveResult, RunState
from .scanner import relative_posix, walk_files

logger = logging.getLogger(__name__)


def entry_name(source: Path, file_path: Path) -> str:
    """Archive entry for a file: <source folder name>/<relative path>."""
    return f"{source.name}/{relative_posix(file_path, source)}"


def check_entry_roots(sources: Sequence[Path]) -> None:
    """Reject sources sharing a folder name, since their entries would collide."""
    seen = {}
    for source in sources:
        if source.name in seen:
            raise ConsolidationError(
                f"Source folders share the name '{source.name}': {seen[source.name]} and {source}"
            )
        seen[source.name] = source


def compress_folders(
    sources: Sequence[Path],
    archive_path: Path,
    *,
    delete_originals: bool = False,
    access: Optional[FolderAccessManager] = None,
    on_progress: Optional[ProgressCallback] = None,
    on_state: Optional[StateCallback] = None,
) -> ArchiveResult:
    """
    Write every regular, non-hidden file of the sources into a new zip archive.

    The archive is created exclusively: an existing file at archive_path, or
    a folder that cannot be written, fails before any entry is added. A
    failure while writing entries leaves the partial archive in place.

    Raises:
        ConsolidationError: Invalid sources, archive_path inside a source, or
            two sources with the same folder name
        AccessDeniedError: Missing grant for a source or the archive folder
        ArchiveError: The archive could not be created or written
    """
    access = access or FolderAccessManager.unrestricted()
    sources = [Path(s).absolute() for s in sources]
    archive_path = Path(archive_path).absolute()
    validate_sources(sources, archive_path)
    check_entry_roots(sources)

    if on_state:
        on_state(RunState.SCANNING)
    total = count_source_files(sources, access)
    logger.info("Compressing %d files from %d folders into %s", total, len(sources), archive_path)

    processed = 0
    with access.access(archive_path.parent, for_writing=True):
        try:
            # Timestamps before 1980 are clamped instead of rejected
            archive = zipfile.ZipFile(
                archive_path, "x", zipfile.ZIP_DEFLATED, strict_timestamps=False
            )
        except OSError as e:
            raise ArchiveError(f"Failed to create zip archive {archive_path}: {e}") from e

        try:
            with archive:
                if on_state:
                    on_state(RunState.COMPRESSING)
                if on_progress:
                    on_progress(processed, total)

                for source in sources:
                    with access.access(source):
                        for file_path in walk_files(source):
                            name = entry_name(source, file_path)
                            archive.write(file_path, arcname=name)
                            logger.debug("Added %s", name)
                            processed += 1
                            if on_progress:
                                on_progress(processed, total)
        except (OSError, ValueError, zipfile.LargeZipFile) as e:
            logger.error("Compression aborted after %d of %d files: %s", processed, total, e)
            raise ArchiveError(str(e)) from e

    result = ArchiveResult(
        archive_path=archive_path,
        item_count=processed,
        total_size=archive_path.stat().st_size,
    )

    if delete_originals:
        result.deleted_folders, result.failed_deletions = delete_folders(sources, access)

    logger.info("Compressed %d files into %s", processed, archive_path)
    return result
