"""Working-set state and the background run of a merge or compress."""

import logging
import threading
from dataclasses import replace
from pathlib import Path
from typing import Callable, Optional, Union

from .access import FolderAccessManager
from .archiver import compress_folders
from .exceptions import ConsolidationError, ConsolidatorError
from .history import HistoryStore
from .merger import merge_folders
from .models import (
    ArchiveResult,
    ConsolidationOperation,
    FolderInfo,
    MergeResult,
    RunState,
    RunStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_FOLDER_NAME = "Consolidated"
DEFAULT_ARCHIVE_NAME = "Compressed.zip"

StatusCallback = Callable[[RunStatus], None]


class ConsolidationSession:
    """The folders, destination and options selected for the next run."""

    def __init__(
        self,
        destination: Optional[Path] = None,
        output_name: Optional[str] = None,
        delete_originals: bool = False,
    ):
        self.folders: list[FolderInfo] = []
        self.destination = Path(destination).absolute() if destination else None
        self.output_name = output_name
        self.delete_originals = delete_originals

    def add_folder(self, path: Path) -> FolderInfo:
        """Scan path and add it to the working set. Adding it twice is a no-op."""
        abs_path = Path(path).absolute()
        for info in self.folders:
            if info.path == abs_path:
                return info
        info = FolderInfo.from_path(abs_path)
        self.folders.append(info)
        logger.debug("Selected %s (%d files, %d bytes)", info.path, info.file_count, info.size)
        return info

    def remove_folder(self, folder: Union[Path, str]) -> bool:
        """Remove a folder by path or FolderInfo id. Returns False if it was not selected."""
        for info in self.folders:
            if info.id == folder or info.path == Path(folder).absolute():
                self.folders.remove(info)
                return True
        return False

    @property
    def source_paths(self) -> list[Path]:
        return [info.path for info in self.folders]

    @property
    def total_source_size(self) -> int:
        return sum(info.size for info in self.folders)

    @property
    def total_file_count(self) -> int:
        return sum(info.file_count for info in self.folders)

    def reset(self) -> None:
        """Forget the selected folders after a run."""
        self.folders.clear()


class ConsolidationRunner:
    """
    Runs one merge or compress at a time on a background thread.

    The worker thread is the only writer of the run status. Every change is
    published as a new immutable RunStatus through on_status and the status
    property.
    """

    def __init__(
        self,
        session: ConsolidationSession,
        history: Optional[HistoryStore] = None,
        access: Optional[FolderAccessManager] = None,
        on_status: Optional[StatusCallback] = None,
        verify: bool = False,
        replace_existing: bool = False,
    ):
        self.session = session
        self.history = history
        self.access = access or FolderAccessManager.unrestricted()
        self.on_status = on_status
        self.verify = verify
        self.replace_existing = replace_existing
        self.result: Optional[Union[MergeResult, ArchiveResult]] = None
        self._status = RunStatus()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def status(self) -> RunStatus:
        return self._status

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start_merge(self) -> threading.Thread:
        """Start merging the session's folders into destination/output_name."""
        return self._start(self._run_merge, "merge")

    def start_compress(self) -> threading.Thread:
        """Start compressing the session's folders into destination/output_name."""
        return self._start(self._run_compress, "compress")

    def wait(self, timeout: Optional[float] = None) -> RunStatus:
        """Wait for the current run to finish and return its final status."""
        if self._thread is not None:
            self._thread.join(timeout)
        return self._status

    def _start(self, target: Callable[[], None], kind: str) -> threading.Thread:
        with self._lock:
            if self.is_running:
                raise ConsolidationError("A run is already in progress")
            if self.session.destination is None:
                raise ConsolidationError("No destination folder selected")
            self.result = None
            self._publish(RunStatus(state=RunState.IDLE))
            self._thread = threading.Thread(
                target=target, name=f"consolidator-{kind}", daemon=True
            )
            self._thread.start()
            return self._thread

    def _publish(self, status: RunStatus) -> None:
        self._status = status
        if self.on_status:
            self.on_status(status)

    def _on_state(self, state: RunState) -> None:
        messages = {
            RunState.SCANNING: "Scanning...",
            RunState.COPYING: "Working...",
            RunState.COMPRESSING: "Compressing...",
        }
        self._publish(replace(self._status, state=state, message=messages.get(state, "")))

    def _on_progress(self, processed: int, total: int) -> None:
        verb = "Compressed" if self._status.state == RunState.COMPRESSING else "Processed"
        self._publish(replace(
            self._status,
            processed=processed,
            total=total,
            message=f"{verb} {processed} of {total} items",
        ))

    def _fail(self, error: Exception) -> None:
        logger.error("Run failed: %s", error)
        self._publish(replace(self._status, state=RunState.FAILED, message=f"Error: {error}"))

    def _run_merge(self) -> None:
        session = self.session
        sources = session.source_paths
        try:
            result = merge_folders(
                sources,
                session.destination,
                session.output_name or DEFAULT_FOLDER_NAME,
                delete_originals=session.delete_originals,
                replace_existing=self.replace_existing,
                verify=self.verify,
                access=self.access,
                on_progress=self._on_progress,
                on_state=self._on_state,
            )
            if self.history is not None:
                self.history.append(ConsolidationOperation(
                    source_folders=tuple(str(p) for p in sources),
                    destination_folder=str(result.destination),
                    item_count=result.item_count,
                    total_size=result.total_size,
                ))
        except ConsolidatorError as e:
            self._fail(e)
            return
        except Exception as e:
            self._fail(e)
            raise

        message = f"Completed! Consolidated {result.item_count} items."
        if session.delete_originals:
            message += self._deletion_summary(result)
        self._finish(result, message)

    def _run_compress(self) -> None:
        session = self.session
        archive_path = session.destination / (session.output_name or DEFAULT_ARCHIVE_NAME)
        try:
            result = compress_folders(
                session.source_paths,
                archive_path,
                delete_originals=session.delete_originals,
                access=self.access,
                on_progress=self._on_progress,
                on_state=self._on_state,
            )
        except ConsolidatorError as e:
            self._fail(e)
            return
        except Exception as e:
            self._fail(e)
            raise

        message = f"Completed! Compressed {result.item_count} items into {archive_path.name}"
        if session.delete_originals:
            message += self._deletion_summary(result)
        self._finish(result, message)

    @staticmethod
    def _deletion_summary(result: Union[MergeResult, ArchiveResult]) -> str:
        if result.failed_deletions:
            return f" {len(result.failed_deletions)} original folder(s) could not be deleted."
        return " Original folders deleted."

    def _finish(self, result: Union[MergeResult, ArchiveResult], message: str) -> None:
        self.result = result
        self.session.reset()
        self._publish(RunStatus(
            state=RunState.COMPLETED,
            processed=result.item_count,
            total=max(self._status.total, result.item_count),
            message=message,
        ))
