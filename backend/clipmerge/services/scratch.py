"""
Scratch Manager - allocates per-job scratch paths and removes them at job end.
"""

from __future__ import annotations

import os
from pathlib import Path

from clipmerge.core.exceptions import ScratchSetupError
from clipmerge.core.logging import JobLog, get_logger
from clipmerge.models.job import ScratchFile, random_suffix

logger = get_logger(__name__)


def ensure_writable_dir(path: Path, label: str) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ScratchSetupError(f"Failed to create {label} directory: {path}.", str(exc)) from exc
    if not os.access(path, os.W_OK):
        raise ScratchSetupError(f"{label.capitalize()} directory not writable: {path}")


class ScratchSet:
    """Scratch files owned by one job.

    Paths are registered at allocation time, before anything is written to
    them, so cleanup covers files left behind by a stage that failed midway.
    Use as a context manager to guarantee cleanup on every exit path.
    """

    def __init__(self, temp_dir: Path, job_id: str, job_log: JobLog | None = None) -> None:
        self.temp_dir = Path(temp_dir)
        self.job_id = job_id
        self.job_log = job_log
        self._files: dict[Path, ScratchFile] = {}

    def allocate(self, origin: str, extension: str) -> ScratchFile:
        """Reserve a unique path in the scratch directory and register it."""
        ext = extension.lstrip(".")
        path = self.temp_dir / f"{self.job_id}_{origin}_{random_suffix()}.{ext}"
        scratch = ScratchFile(path=path, origin=origin)
        self._files[path] = scratch
        return scratch

    def release(self, path: Path) -> None:
        """Forget ``path`` without deleting it (it was moved elsewhere)."""
        self._files.pop(Path(path), None)

    def __contains__(self, path: object) -> bool:
        return isinstance(path, (str, Path)) and Path(path) in self._files

    def __len__(self) -> int:
        return len(self._files)

    @property
    def paths(self) -> list[Path]:
        return list(self._files)

    def cleanup(self) -> list[Path]:
        """Delete every registered file. Idempotent, never raises."""
        removed: list[Path] = []
        for path in self._files:
            try:
                path.unlink()
                removed.append(path)
            except FileNotFoundError:
                pass
            except OSError as exc:
                logger.warning(
                    "Failed to remove scratch file",
                    extra={"path": str(path), "error": str(exc)},
                )
                if self.job_log is not None:
                    self.job_log.warning(f"Failed to remove scratch file {path}: {exc}")
        if removed and self.job_log is not None:
            self.job_log.info("Cleaning up temp files: " + ", ".join(str(p) for p in removed))
        self._files.clear()
        return removed

    def __enter__(self) -> "ScratchSet":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()
