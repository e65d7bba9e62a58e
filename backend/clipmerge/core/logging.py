"""
Logging helpers.

Service-wide logs go through ``get_logger``. Every merge job additionally owns a
``JobLog``: an append-only file next to the published video that records each
stage, every encoder invocation with its full output, and the final outcome.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

ROOT_LOGGER_NAME = "clipmerge"
JOB_LOGGER_NAME = f"{ROOT_LOGGER_NAME}.jobs"
SERVICE_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
JOB_FORMAT = "[%(asctime)s] %(message)s"
JOB_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_configured = False


def setup_logging(debug: bool = False) -> logging.Logger:
    """Configure the service logger once; later calls only adjust the level."""
    global _configured

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    level = logging.DEBUG if debug else logging.INFO
    logger.setLevel(level)
    if not _configured:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(SERVICE_FORMAT))
        logger.addHandler(handler)
        logger.propagate = False
        _configured = True
    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the service namespace."""
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


class JobLog:
    """Append-only, per-job log file.

    The underlying ``logging.Logger`` is created outside the logging manager's
    registry so that finished jobs do not accumulate loggers. Records still
    propagate to the ``clipmerge.jobs`` service logger.
    """

    def __init__(self, job_id: str, path: Path) -> None:
        self.job_id = job_id
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

        self._logger = logging.Logger(f"{JOB_LOGGER_NAME}.{job_id}", logging.DEBUG)
        self._logger.parent = logging.getLogger(JOB_LOGGER_NAME)
        self._logger.propagate = True
        self._handler = logging.FileHandler(self.path, mode="a", encoding="utf-8")
        self._handler.setFormatter(logging.Formatter(JOB_FORMAT, datefmt=JOB_DATE_FORMAT))
        self._logger.addHandler(self._handler)
        self._closed = False

    def info(self, message: str, **extra: Any) -> None:
        self._logger.info(message, extra=extra or None)

    def warning(self, message: str, **extra: Any) -> None:
        self._logger.warning(message, extra=extra or None)

    def error(self, message: str, **extra: Any) -> None:
        self._logger.error(message, extra=extra or None)

    def failure(self, message: str, status_code: int, context: str | None = None, limit: int = 2048) -> None:
        """Record a terminal failure together with its raw diagnostic."""
        entry = f"Error (HTTP {status_code}): {message}"
        if context:
            if len(context) > limit:
                context = context[:limit] + "... (truncated)"
            entry += f"\nContext/Details:\n{context}"
        self.error(entry)

    def close(self) -> None:
        if self._closed:
            return
        self._logger.removeHandler(self._handler)
        self._handler.close()
        self._closed = True

    def __enter__(self) -> "JobLog":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def get_job_logger(job_id: str, path: Path) -> JobLog:
    """Open the log file for ``job_id`` at ``path``."""
    return JobLog(job_id, path)
