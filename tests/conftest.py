"""Shared test fixtures."""

import tempfile
from pathlib import Path

import pytest

from folder_consolidator.history import HistoryStore
from folder_consolidator.models import ConsolidationOperation


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_sources(temp_dir):
    """Create two source folders with a colliding file name."""
    folder_a = temp_dir / "A"
    folder_b = temp_dir / "B"
    dest = temp_dir / "Dest"

    folder_a.mkdir()
    folder_b.mkdir()
    dest.mkdir()

    # Same name in both folders
    (folder_a / "x.png").write_bytes(b"image from A")
    (folder_b / "x.png").write_bytes(b"image from B")

    # Nested files
    (folder_a / "sub").mkdir()
    (folder_a / "sub" / "nested.txt").write_text("nested in A")
    (folder_b / "notes.md").write_text("notes in B")

    # Hidden entries are never merged
    (folder_a / ".DS_Store").write_text("hidden")
    (folder_b / ".git").mkdir()
    (folder_b / ".git" / "config").write_text("hidden dir")

    return folder_a, folder_b, dest


@pytest.fixture
def history_path(temp_dir):
    """Create a temporary history database path."""
    return temp_dir / "history.db"


@pytest.fixture
def history_store(history_path):
    """Create a HistoryStore instance."""
    store = HistoryStore(history_path)
    yield store
    try:
        store.close()
    except Exception:
        pass


@pytest.fixture
def sample_operation():
    """Create a sample ConsolidationOperation for testing."""
    return ConsolidationOperation(
        source_folders=("/src/A", "/src/B"),
        destination_folder="/dest/Out",
        item_count=2,
        total_size=2048,
        id="11111111-2222-3333-4444-555555555555",
        date="2024-01-01T12:00:00",
    )
