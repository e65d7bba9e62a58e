"""Shared fixtures for merge pipeline tests."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterable

import httpx
import pytest

from clipmerge.core.config import Settings
from clipmerge.core.deadline import Deadline
from clipmerge.core.logging import JobLog
from clipmerge.models.job import EncoderInvocation
from clipmerge.services.encoder import EncoderAdapter
from clipmerge.services.scratch import ScratchSet


class FakeEncoder(EncoderAdapter):
    """Stands in for ffmpeg: records argument vectors and writes the output file.

    ``outcomes`` is consumed one entry per call as ``(exit_status, output_bytes, text)``;
    once exhausted every call succeeds with a 4 KiB output.
    """

    def __init__(self, settings: Settings, outcomes: Iterable[tuple[int, int, str]] = ()) -> None:
        super().__init__(settings)
        self.outcomes = list(outcomes)
        self.calls: list[list[str]] = []

    async def invoke(self, args, job_log, deadline, stage="encoding"):
        deadline.check(stage)
        self.calls.append(list(args))
        job_log.info(f"Executing FFmpeg: {' '.join([self.binary, *args])}")
        exit_status, size, text = self.outcomes.pop(0) if self.outcomes else (0, 4096, "")
        if size:
            Path(args[-1]).write_bytes(b"\x00" * size)
        invocation = EncoderInvocation(argv=[self.binary, *args], exit_status=exit_status, output=text)
        if not invocation.succeeded:
            self._log_failure(invocation, job_log)
        return invocation


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    storage = tmp_path / "storage"
    config = Settings(
        storage_dir=storage,
        storage_output_dir=storage / "outputs",
        storage_temp_dir=storage / "temp",
        ffmpeg_path="ffmpeg",
        public_base_url="https://media.example.com",
        job_timeout_seconds=30,
    )
    config.ensure_directories()
    return config


@pytest.fixture
def job_log(tmp_path: Path):
    log = JobLog("test_job", tmp_path / "logs" / "test_job.log")
    yield log
    log.close()


@pytest.fixture
def scratch(settings: Settings, job_log: JobLog):
    scratch_set = ScratchSet(settings.storage_temp_dir, "test_job", job_log)
    yield scratch_set
    scratch_set.cleanup()


@pytest.fixture
def deadline() -> Deadline:
    return Deadline(30)


@pytest.fixture
def fake_encoder(settings: Settings) -> Callable[..., FakeEncoder]:
    def factory(*outcomes: tuple[int, int, str]) -> FakeEncoder:
        return FakeEncoder(settings, outcomes)

    return factory


@pytest.fixture
def media_transport() -> Callable[[dict], httpx.MockTransport]:
    """Build a transport serving ``{url: bytes | status_code}``."""

    def factory(routes: dict) -> httpx.MockTransport:
        def handler(request: httpx.Request) -> httpx.Response:
            body = routes.get(str(request.url))
            if body is None:
                return httpx.Response(404, content=b"missing")
            if isinstance(body, int):
                return httpx.Response(body, content=b"")
            return httpx.Response(200, content=body)

        return httpx.MockTransport(handler)

    return factory
