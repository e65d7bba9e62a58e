"""
Publisher - moves the finished video to its public location.
"""

from __future__ import annotations

import os
import shutil
from pathlib import Path

from clipmerge.core.exceptions import PublishFailedError
from clipmerge.core.logging import JobLog
from clipmerge.models.job import PublishedArtifact, random_suffix
from clipmerge.services.scratch import ScratchSet


def public_url_for(target: Path, storage_dir: Path, base_url: str) -> str:
    """Address of ``target`` as served by the ``/storage`` static mount."""
    base = base_url.rstrip("/")
    try:
        relative = target.resolve().relative_to(storage_dir.resolve()).as_posix()
    except ValueError:
        relative = target.name
    return f"{base}/storage/{relative}"


def _copy_verified(source: Path, target: Path) -> None:
    """Copy next to ``target``, check the size, then rename into place."""
    staging = target.with_name(f".{target.name}.{random_suffix()}.part")
    try:
        shutil.copyfile(source, staging)
        if staging.stat().st_size != source.stat().st_size:
            raise OSError(f"size mismatch after copying {source} to {staging}")
        os.replace(staging, target)
    except OSError:
        if staging.exists():
            staging.unlink()
        raise


def publish(
    source: Path,
    target: Path,
    scratch: ScratchSet,
    job_log: JobLog,
    storage_dir: Path,
    base_url: str,
) -> PublishedArtifact:
    """Rename ``source`` onto ``target``, falling back to copy-then-verify."""
    job_log.info("Moving/copying intermediate file to final destination.")
    url = public_url_for(target, storage_dir, base_url)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise PublishFailedError(str(source), str(target), str(exc)) from exc

    try:
        os.rename(source, target)
    except OSError as rename_error:
        job_log.warning(f"Rename failed ({rename_error}), attempting copy...")
        try:
            _copy_verified(source, target)
        except OSError as copy_error:
            raise PublishFailedError(str(source), str(target), str(copy_error)) from copy_error
        job_log.info("Copy succeeded.")
        return PublishedArtifact(path=target, url=url, method="copy")

    scratch.release(source)
    job_log.info("Rename/move successful.")
    return PublishedArtifact(path=target, url=url, method="rename")
