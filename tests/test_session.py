"""Tests for folder_consolidator.session module."""

import os
import shutil
import threading
import zipfile
from pathlib import Path
from unittest.mock import patch

import pytest

from folder_consolidator.access import FolderAccessManager
from folder_consolidator.exceptions import ConsolidationError
from folder_consolidator.models import MergeResult, RunState
from folder_consolidator.session import (
    DEFAULT_ARCHIVE_NAME,
    DEFAULT_FOLDER_NAME,
    ConsolidationRunner,
    ConsolidationSession,
)


class TestConsolidationSession:
    """Tests for the working set."""

    def test_add_folder(self, sample_sources):
        folder_a, _, _ = sample_sources
        session = ConsolidationSession()

        info = session.add_folder(folder_a)

        assert session.folders == [info]
        assert session.source_paths == [folder_a.absolute()]

    def test_add_folder_twice_is_noop(self, sample_sources):
        folder_a, _, _ = sample_sources
        session = ConsolidationSession()

        first = session.add_folder(folder_a)
        second = session.add_folder(folder_a)

        assert first is second
        assert len(session.folders) == 1

    def test_total_size_tracks_selection(self, sample_sources):
        folder_a, folder_b, _ = sample_sources
        session = ConsolidationSession()

        info_a = session.add_folder(folder_a)
        info_b = session.add_folder(folder_b)
        assert session.total_source_size == info_a.size + info_b.size
        assert session.total_file_count == 4

        session.remove_folder(folder_a)
        assert session.total_source_size == info_b.size

    def test_remove_by_id(self, sample_sources):
        folder_a, _, _ = sample_sources
        session = ConsolidationSession()
        info = session.add_folder(folder_a)

        assert session.remove_folder(info.id) is True
        assert session.folders == []
        assert session.total_source_size == 0

    def test_remove_unknown(self, temp_dir):
        session = ConsolidationSession()
        assert session.remove_folder(temp_dir) is False

    def test_reset(self, sample_sources):
        folder_a, _, dest = sample_sources
        session = ConsolidationSession(destination=dest, output_name="Out")
        session.add_folder(folder_a)

        session.reset()

        assert session.folders == []
        assert session.destination == dest.absolute()


def make_session(sample_sources, **kwargs) -> ConsolidationSession:
    folder_a, folder_b, dest = sample_sources
    session = ConsolidationSession(destination=dest, **kwargs)
    session.add_folder(folder_a)
    session.add_folder(folder_b)
    return session


class TestRunnerMerge:
    """Tests for background merge runs."""

    def test_merge_completes(self, sample_sources, history_store):
        _, _, dest = sample_sources
        session = make_session(sample_sources, output_name="Out")
        runner = ConsolidationRunner(session, history=history_store)

        runner.start_merge()
        status = runner.wait(timeout=30)

        assert status.state == RunState.COMPLETED
        assert status.fraction == 1.0
        assert status.message == "Completed! Consolidated 4 items."
        assert isinstance(runner.result, MergeResult)
        assert (dest / "Out" / "x_1.png").exists()

    def test_merge_records_history(self, sample_sources, history_store):
        folder_a, folder_b, dest = sample_sources
        session = make_session(sample_sources, output_name="Out")
        runner = ConsolidationRunner(session, history=history_store)

        runner.start_merge()
        runner.wait(timeout=30)

        [operation] = history_store.load()
        assert operation.source_folders == (str(folder_a.absolute()), str(folder_b.absolute()))
        assert operation.destination_folder == str(dest / "Out")
        assert operation.item_count == 4
        assert operation.total_size == runner.result.total_size

    def test_merge_resets_working_set(self, sample_sources):
        session = make_session(sample_sources)
        runner = ConsolidationRunner(session)

        runner.start_merge()
        runner.wait(timeout=30)

        assert session.folders == []
        assert session.total_source_size == 0

    def test_default_folder_name(self, sample_sources):
        _, _, dest = sample_sources
        runner = ConsolidationRunner(make_session(sample_sources))

        runner.start_merge()
        runner.wait(timeout=30)

        assert (dest / DEFAULT_FOLDER_NAME).is_dir()

    def test_statuses_published_in_order(self, sample_sources):
        statuses = []
        runner = ConsolidationRunner(make_session(sample_sources), on_status=statuses.append)

        runner.start_merge()
        runner.wait(timeout=30)

        states = [s.state for s in statuses]
        assert states[0] == RunState.IDLE
        assert states[1] == RunState.SCANNING
        assert states[-1] == RunState.COMPLETED
        fractions = [s.fraction for s in statuses]
        assert fractions == sorted(fractions)
        assert "Processed 4 of 4 items" in [s.message for s in statuses]

    def test_delete_originals_message(self, sample_sources):
        folder_a, folder_b, _ = sample_sources
        session = make_session(sample_sources, delete_originals=True)
        runner = ConsolidationRunner(session)

        runner.start_merge()
        status = runner.wait(timeout=30)

        assert status.message.endswith("Original folders deleted.")
        assert not folder_a.exists()
        assert not folder_b.exists()

    def test_failed_deletion_reported_in_message(self, sample_sources):
        folder_a, folder_b, _ = sample_sources
        session = make_session(sample_sources, delete_originals=True)
        runner = ConsolidationRunner(session)
        real_rmtree = shutil.rmtree

        def locked_rmtree(path, *args, **kwargs):
            if Path(path).name == "A":
                raise PermissionError(13, "Permission denied", str(path))
            return real_rmtree(path, *args, **kwargs)

        with patch("folder_consolidator.merger.shutil.rmtree", side_effect=locked_rmtree):
            runner.start_merge()
            status = runner.wait(timeout=30)

        assert status.state == RunState.COMPLETED
        assert status.message == (
            "Completed! Consolidated 4 items. 1 original folder(s) could not be deleted."
        )
        assert folder_a.exists()
        assert not folder_b.exists()

    def test_failure_publishes_error(self, sample_sources, history_store):
        session = make_session(sample_sources, output_name="Out")
        runner = ConsolidationRunner(session, history=history_store)

        with patch("folder_consolidator.merger.shutil.copy2", side_effect=OSError("disk full")):
            runner.start_merge()
            status = runner.wait(timeout=30)

        assert status.state == RunState.FAILED
        assert status.message == "Error: disk full"
        assert history_store.load() == []
        assert len(session.folders) == 2

    def test_access_denied_fails_run(self, sample_sources):
        folder_a, _, dest = sample_sources
        access = FolderAccessManager()
        access.grant(folder_a)
        access.grant(dest, writable=True)
        runner = ConsolidationRunner(make_session(sample_sources), access=access)

        runner.start_merge()
        status = runner.wait(timeout=30)

        assert status.state == RunState.FAILED
        assert "No access to folder" in status.message

    def test_empty_run_completes(self, temp_dir):
        empty = temp_dir / "empty"
        empty.mkdir()
        session = ConsolidationSession(destination=temp_dir / "Dest")
        session.add_folder(empty)
        runner = ConsolidationRunner(session)

        runner.start_merge()
        status = runner.wait(timeout=30)

        assert status.state == RunState.COMPLETED
        assert status.total == 0
        assert status.fraction == 1.0

    def test_no_destination(self, sample_sources):
        folder_a, _, _ = sample_sources
        session = ConsolidationSession()
        session.add_folder(folder_a)

        with pytest.raises(ConsolidationError, match="No destination"):
            ConsolidationRunner(session).start_merge()

    def test_no_sources_fails(self, temp_dir):
        runner = ConsolidationRunner(ConsolidationSession(destination=temp_dir))

        runner.start_merge()
        status = runner.wait(timeout=30)

        assert status.state == RunState.FAILED
        assert "No source folders" in status.message

    def test_single_run_at_a_time(self, sample_sources):
        release = threading.Event()
        runner = ConsolidationRunner(make_session(sample_sources))

        def blocked_merge():
            release.wait(timeout=30)

        with patch.object(runner, "_run_merge", side_effect=blocked_merge):
            runner.start_merge()
            try:
                with pytest.raises(ConsolidationError, match="already in progress"):
                    runner.start_compress()
            finally:
                release.set()
                runner.wait(timeout=30)

    def test_restart_after_failure(self, sample_sources):
        session = make_session(sample_sources, output_name="Out")
        runner = ConsolidationRunner(session)

        with patch("folder_consolidator.merger.shutil.copy2", side_effect=OSError("disk full")):
            runner.start_merge()
            runner.wait(timeout=30)

        runner.start_merge()
        status = runner.wait(timeout=30)

        assert status.state == RunState.COMPLETED


class TestRunnerCompress:
    """Tests for background compress runs."""

    def test_compress_completes(self, sample_sources, history_store):
        _, _, dest = sample_sources
        runner = ConsolidationRunner(make_session(sample_sources), history=history_store)

        runner.start_compress()
        status = runner.wait(timeout=30)

        assert status.state == RunState.COMPLETED
        assert status.message == f"Completed! Compressed 4 items into {DEFAULT_ARCHIVE_NAME}"
        with zipfile.ZipFile(dest / DEFAULT_ARCHIVE_NAME) as archive:
            assert len(archive.namelist()) == 4
        assert history_store.load() == []

    def test_compress_progress_message(self, sample_sources):
        statuses = []
        runner = ConsolidationRunner(make_session(sample_sources), on_status=statuses.append)

        runner.start_compress()
        runner.wait(timeout=30)

        assert "Compressed 4 of 4 items" in [s.message for s in statuses]
        assert RunState.COMPRESSING in [s.state for s in statuses]

    def test_compress_old_file_completes(self, sample_sources):
        folder_a, _, dest = sample_sources
        os.utime(folder_a / "x.png", (0, 0))
        runner = ConsolidationRunner(make_session(sample_sources))

        runner.start_compress()
        status = runner.wait(timeout=30)

        assert status.state == RunState.COMPLETED
        with zipfile.ZipFile(dest / DEFAULT_ARCHIVE_NAME) as archive:
            assert "A/x.png" in archive.namelist()

    def test_compress_delete_originals_message(self, sample_sources):
        folder_a, folder_b, _ = sample_sources
        runner = ConsolidationRunner(make_session(sample_sources, delete_originals=True))

        runner.start_compress()
        status = runner.wait(timeout=30)

        assert status.message.endswith("Original folders deleted.")
        assert not folder_a.exists()
        assert not folder_b.exists()

    def test_compress_existing_archive_fails(self, sample_sources):
        _, _, dest = sample_sources
        (dest / "out.zip").write_bytes(b"existing")
        runner = ConsolidationRunner(make_session(sample_sources, output_name="out.zip"))

        runner.start_compress()
        status = runner.wait(timeout=30)

        assert status.state == RunState.FAILED
        assert status.message.startswith("Error: Failed to create zip archive")
