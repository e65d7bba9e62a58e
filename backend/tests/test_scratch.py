from __future__ import annotations

import pytest

from clipmerge.core.exceptions import ScratchSetupError
from clipmerge.services.scratch import ScratchSet, ensure_writable_dir


def test_allocations_are_unique_and_tagged(tmp_path):
    scratch = ScratchSet(tmp_path, "merged_video_1700000000")
    first = scratch.allocate("vid0", "mp4")
    second = scratch.allocate("vid0", ".mp4")

    assert first.path != second.path
    assert first.path.name.startswith("merged_video_1700000000_vid0_")
    assert second.path.suffix == ".mp4"
    assert len(scratch) == 2


def test_concurrent_jobs_do_not_collide(tmp_path):
    a = ScratchSet(tmp_path, "job_a")
    b = ScratchSet(tmp_path, "job_b")
    names = {a.allocate("vid0", "mp4").path for _ in range(50)}
    names |= {b.allocate("vid0", "mp4").path for _ in range(50)}
    assert len(names) == 100


def test_cleanup_removes_existing_files_and_is_idempotent(tmp_path):
    scratch = ScratchSet(tmp_path, "job")
    written = scratch.allocate("vid0", "mp4").path
    written.write_bytes(b"data")
    never_written = scratch.allocate("merged", "mp4").path

    removed = scratch.cleanup()

    assert removed == [written]
    assert not written.exists()
    assert not never_written.exists()
    assert scratch.cleanup() == []


def test_released_file_survives_cleanup(tmp_path):
    scratch = ScratchSet(tmp_path, "job")
    kept = scratch.allocate("merged", "mp4").path
    kept.write_bytes(b"data")
    scratch.release(kept)

    scratch.cleanup()

    assert kept.exists()


def test_context_manager_cleans_up_on_error(tmp_path):
    with pytest.raises(RuntimeError):
        with ScratchSet(tmp_path, "job") as scratch:
            scratch.allocate("vid0", "mp4").path.write_bytes(b"x")
            raise RuntimeError("stage failed")
    assert list(tmp_path.iterdir()) == []


def test_ensure_writable_dir_rejects_file_in_the_way(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    with pytest.raises(ScratchSetupError):
        ensure_writable_dir(blocker / "temp", "temp")


def test_cleanup_survives_unremovable_entries(tmp_path, job_log):
    temp_dir = tmp_path / "temp"
    temp_dir.mkdir()
    scratch = ScratchSet(temp_dir, "job", job_log)
    written = scratch.allocate("vid0", "mp4").path
    written.write_bytes(b"data")
    unremovable = scratch.allocate("x" * 300, "mp4").path
    later = scratch.allocate("merged", "mp4").path
    later.write_bytes(b"data")

    removed = scratch.cleanup()

    assert removed == [written, later]
    assert list(temp_dir.iterdir()) == []
    assert unremovable not in scratch
    assert f"Failed to remove scratch file {unremovable}" in job_log.path.read_text()
