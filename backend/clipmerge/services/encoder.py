"""
Encoder Invocation Adapter - runs ffmpeg and classifies its failures.

ffmpeg is always started with an argument vector, never through a shell.
stdout and stderr are captured as one interleaved text stream. The full
output goes to the job log, while ``classify_failure`` condenses it into a
short message that is safe to return to API callers.
"""

from __future__ import annotations

import asyncio
import re
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from clipmerge.core.config import Settings
from clipmerge.core.deadline import Deadline
from clipmerge.core.exceptions import EncoderNotFoundError, JobTimeoutError, MergeServiceError
from clipmerge.core.logging import JobLog, get_logger
from clipmerge.models.job import EncoderInvocation

logger = get_logger(__name__)

NOT_FOUND_EXIT_STATUS = 127

FAILURE_INDICATOR = re.compile(
    r"(permission denied|invalid argument|error opening|fail|unable to open|could not open"
    r"|codec not found|conversion failed|no such file or directory|not found|muxing overhead"
    r"|error while|does not match any stream)",
    re.IGNORECASE,
)
ERROR_PREFIX = re.compile(r"^(error|fatal|panic):", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class FailureClassification:
    kind: str  # "not_found", "error", "potential" or "generic"
    message: str

    @property
    def encoder_missing(self) -> bool:
        return self.kind == "not_found"


def _reports_missing_binary(output: str, ffmpeg_path: str) -> bool:
    """A line such as ``sh: /opt/ffmpeg: No such file or directory``.

    The binary has to be the subject of the message; the version banner of a
    real run also mentions ffmpeg and must not count.
    """
    if not ffmpeg_path:
        return False
    subject = f"{ffmpeg_path}:".lower()
    for raw_line in output.splitlines():
        line = raw_line.strip().lower()
        if "no such file or directory" not in line and "not found" not in line:
            continue
        if line.startswith(subject) or f" {subject}" in line:
            return True
    return False


def classify_failure(
    exit_status: int,
    output: str,
    ffmpeg_path: str,
    tail_lines: int = 5,
    tail_chars: int = 350,
) -> FailureClassification:
    """Map a failed invocation's output to a concise message.

    Deterministic for identical input and never raises. Lines are scanned in
    order: the first indicator line carrying an ``error:``/``fatal:``/``panic:``
    prefix wins outright, otherwise the first indicator line is reported as a
    potential cause, otherwise a generic message with the output tail is used.
    """
    if exit_status == NOT_FOUND_EXIT_STATUS or _reports_missing_binary(output, ffmpeg_path):
        return FailureClassification(
            "not_found",
            "FFmpeg execution failed: Command not found or inaccessible. "
            f"Path used: '{ffmpeg_path}'. Verify path and OS permissions.",
        )

    lines = output.splitlines()
    potential: str | None = None
    for raw_line in lines:
        line = raw_line.strip()
        if not FAILURE_INDICATOR.search(line):
            continue
        if ERROR_PREFIX.match(line):
            return FailureClassification("error", f"FFmpeg execution failed: {line}")
        if potential is None:
            potential = line
    if potential is not None:
        return FailureClassification("potential", f"FFmpeg potentially failed: {potential}")

    tail = "\n".join(lines[-tail_lines:]) if tail_lines > 0 else ""
    collapsed = _WHITESPACE.sub(" ", tail)[:tail_chars]
    return FailureClassification(
        "generic",
        f"FFmpeg failed with exit code {exit_status}. Full output logged. Tail of output: {collapsed}",
    )


def output_is_valid(path: Path, min_bytes: int) -> bool:
    """Encoder output exists and is not suspiciously small."""
    try:
        return path.stat().st_size >= min_bytes
    except OSError:
        return False


def discard_output(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


class EncoderAdapter:
    """Runs the configured ffmpeg binary for one stage at a time."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @property
    def binary(self) -> str:
        return self.settings.ffmpeg_path

    async def invoke(
        self,
        args: Sequence[str],
        job_log: JobLog,
        deadline: Deadline,
        stage: str = "encoding",
    ) -> EncoderInvocation:
        argv = [self.binary, *args]
        deadline.check(stage)
        job_log.info(f"Executing FFmpeg: {shlex.join(argv)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except (FileNotFoundError, PermissionError) as exc:
            invocation = EncoderInvocation(
                argv=argv,
                exit_status=NOT_FOUND_EXIT_STATUS,
                output=f"{self.binary}: {exc.strerror or exc}",
            )
            self._log_failure(invocation, job_log)
            return invocation

        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=deadline.remaining())
        except asyncio.TimeoutError:
            await self._terminate(process)
            job_log.error(f"FFmpeg killed after exceeding the job time budget during {stage}")
            raise JobTimeoutError(stage, deadline.budget_seconds)
        except asyncio.CancelledError:
            await self._terminate(process)
            raise

        invocation = EncoderInvocation(
            argv=argv,
            exit_status=process.returncode if process.returncode is not None else -1,
            output=stdout.decode("utf-8", errors="replace") if stdout else "",
        )
        if not invocation.succeeded:
            self._log_failure(invocation, job_log)
        return invocation

    def classify(self, invocation: EncoderInvocation) -> FailureClassification:
        return classify_failure(
            invocation.exit_status,
            invocation.output,
            self.binary,
            tail_lines=self.settings.error_tail_lines,
            tail_chars=self.settings.error_tail_chars,
        )

    def failure_error(
        self,
        invocation: EncoderInvocation,
        error_cls: type[MergeServiceError],
    ) -> MergeServiceError:
        """Build the exception a stage should raise for a failed invocation."""
        classification = self.classify(invocation)
        if classification.encoder_missing:
            return EncoderNotFoundError(self.binary, invocation.output)
        return error_cls(classification.message, invocation.output)

    async def probe_version(self, timeout: float = 10.0) -> tuple[int, str]:
        """Run ``ffmpeg -version``; returns (exit status, combined output)."""
        try:
            process = await asyncio.create_subprocess_exec(
                self.binary,
                "-version",
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except (FileNotFoundError, PermissionError) as exc:
            return NOT_FOUND_EXIT_STATUS, f"{self.binary}: {exc.strerror or exc}"
        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            await self._terminate(process)
            return -1, ""
        return process.returncode or 0, stdout.decode("utf-8", errors="replace")

    @staticmethod
    def _log_failure(invocation: EncoderInvocation, job_log: JobLog) -> None:
        job_log.error(
            f"FFmpeg Execution Failed (Return Code: {invocation.exit_status}). "
            f"Full Output:\n{invocation.output}"
        )

    @staticmethod
    async def _terminate(process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()
        logger.warning("Killed ffmpeg process", extra={"pid": process.pid})
