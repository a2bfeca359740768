"""Data models for folder consolidator."""

import uuid
from dataclasses import dataclass, asdict, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from .scanner import folder_stats


def _new_id() -> str:
    return str(uuid.uuid4())


def progress_fraction(processed: int, total: int) -> float:
    """Fraction of work done, clamped to [0, 1]. An empty run counts as done."""
    if total <= 0:
        return 1.0
    return min(max(processed / total, 0.0), 1.0)


class RunState(Enum):
    """States of a merge or compress run."""
    IDLE = "idle"
    SCANNING = "scanning"
    COPYING = "copying"
    COMPRESSING = "compressing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class FolderInfo:
    """A selected source folder with its size and file count."""
    path: Path
    size: int
    file_count: int
    id: str = field(default_factory=_new_id)

    @classmethod
    def from_path(cls, path: Path) -> "FolderInfo":
        """Scan path recursively and build its FolderInfo."""
        abs_path = Path(path).absolute()
        size, count = folder_stats(abs_path)
        return cls(path=abs_path, size=size, file_count=count)

    @property
    def name(self) -> str:
        return self.path.name


@dataclass(frozen=True)
class ConsolidationOperation:
    """Record of one completed merge."""
    source_folders: tuple[str, ...]
    destination_folder: str
    item_count: int
    total_size: int
    id: str = field(default_factory=_new_id)
    date: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict:
        data = asdict(self)
        data["source_folders"] = list(self.source_folders)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ConsolidationOperation":
        return cls(
            source_folders=tuple(data["source_folders"]),
            destination_folder=data["destination_folder"],
            item_count=int(data["item_count"]),
            total_size=int(data["total_size"]),
            id=data["id"],
            date=data["date"],
        )

    @property
    def timestamp(self) -> datetime:
        return datetime.fromisoformat(self.date)


@dataclass(frozen=True)
class RunStatus:
    """Immutable snapshot of a run, published after every step."""
    state: RunState = RunState.IDLE
    processed: int = 0
    total: int = 0
    message: str = ""

    @property
    def fraction(self) -> float:
        if self.state == RunState.COMPLETED:
            return progress_fraction(self.processed, self.total)
        # Total is unknown until the pre-pass count is done
        if self.total <= 0:
            return 0.0
        return progress_fraction(self.processed, self.total)


@dataclass
class MergeResult:
    """Outcome of a successful merge."""
    destination: Path
    item_count: int
    total_size: int
    deleted_folders: list[Path] = field(default_factory=list)
    failed_deletions: list[tuple[Path, str]] = field(default_factory=list)


@dataclass
class ArchiveResult:
    """Outcome of a successful compress run."""
    archive_path: Path
    item_count: int
    total_size: int
    deleted_folders: list[Path] = field(default_factory=list)
    failed_deletions: list[tuple[Path, str]] = field(default_factory=list)
