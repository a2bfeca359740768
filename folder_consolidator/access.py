"""Scoped folder access grants."""

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from .exceptions import AccessDeniedError

logger = logging.getLogger(__name__)


def _nearest_existing(path: Path) -> Path:
    """Return path itself or its closest ancestor that exists."""
    for candidate in (path, *path.parents):
        if candidate.exists():
            return candidate
    return path


class FolderAccessManager:
    """
    Keeps track of which folders the user granted access to.

    A grant on a folder covers everything below it. Access is taken with the
    ``access()`` context manager, which is always released on exit, even when
    the body raises.
    """

    def __init__(self, unrestricted: bool = False):
        self._grants: dict[Path, bool] = {}
        self._unrestricted = unrestricted
        self._active: list[Path] = []

    @classmethod
    def unrestricted(cls) -> "FolderAccessManager":
        """A manager that grants read and write access everywhere."""
        return cls(unrestricted=True)

    def grant(self, path: Path, writable: bool = False) -> None:
        """Record a grant for path (and everything below it)."""
        path = Path(path).absolute()
        self._grants[path] = writable or self._grants.get(path, False)
        logger.debug("Granted %s access to %s", "write" if writable else "read", path)

    def _covering_grant(self, path: Path) -> Optional[bool]:
        """Writable flag of the closest grant covering path, None if there is none."""
        for candidate in (path, *path.parents):
            if candidate in self._grants:
                return self._grants[candidate]
        return None

    def has_access(self, path: Path, for_writing: bool = False) -> bool:
        if self._unrestricted:
            return True
        writable = self._covering_grant(Path(path).absolute())
        if writable is None:
            return False
        return writable or not for_writing

    @property
    def active(self) -> tuple[Path, ...]:
        """Paths currently being accessed."""
        return tuple(self._active)

    @contextmanager
    def access(self, path: Path, for_writing: bool = False) -> Iterator[Path]:
        """
        Acquire access to path for the duration of the with-block.

        Raises:
            AccessDeniedError: No grant covers path, or the OS refuses the
                requested access
        """
        path = Path(path).absolute()
        if not self.has_access(path, for_writing):
            raise AccessDeniedError(f"No access to folder: {path}")

        mode = os.W_OK if for_writing else os.R_OK
        if not os.access(_nearest_existing(path), mode):
            raise AccessDeniedError(f"Permission denied: {path}")

        self._active.append(path)
        logger.debug("Begin access to %s", path)
        try:
            yield path
        finally:
            self._active.remove(path)
            logger.debug("End access to %s", path)
