"""
Merge pipeline - runs one merge job from download to publication.

States move strictly forward:
ACCEPTED -> DOWNLOADING -> MERGING -> AUDIO_REPLACING -> PUBLISHING -> SUCCEEDED.
MERGING is skipped for a single clip and AUDIO_REPLACING when no audio was
supplied. FAILED can be entered from any non-terminal state. Scratch files are
removed on every exit path, except the one the publisher moved into place.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import httpx

from clipmerge.core.config import Settings
from clipmerge.core.deadline import Deadline
from clipmerge.core.exceptions import MergeServiceError
from clipmerge.core.logging import JobLog, get_logger
from clipmerge.models.job import (
    STATE_ORDER,
    TERMINAL_STATES,
    JobState,
    MergeJob,
    PublishedArtifact,
)
from clipmerge.services.encoder import EncoderAdapter
from clipmerge.services.fetcher import Fetcher
from clipmerge.services.publisher import publish
from clipmerge.services.scratch import ScratchSet, ensure_writable_dir
from clipmerge.services.video_assembler import replace_audio
from clipmerge.services.video_stitcher import stitch_videos

logger = get_logger(__name__)


class MergePipeline:
    def __init__(
        self,
        settings: Settings,
        encoder: EncoderAdapter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self.encoder = encoder or EncoderAdapter(settings)
        self.fetcher = Fetcher(settings, transport=transport)
        self.state = JobState.ACCEPTED
        self.history: list[JobState] = [JobState.ACCEPTED]

    def _transition(self, new_state: JobState, job_log: JobLog) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"Job already finished in state {self.state.value}")
        if new_state is not JobState.FAILED and STATE_ORDER.index(new_state) <= STATE_ORDER.index(self.state):
            raise RuntimeError(f"Illegal state transition: {self.state.value} -> {new_state.value}")
        job_log.info(f"State: {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    def output_path(self, job: MergeJob) -> Path:
        return self.settings.storage_output_dir / job.folder / job.output_filename

    async def run(self, job: MergeJob, job_log: JobLog, base_url: str) -> PublishedArtifact:
        deadline = Deadline(self.settings.job_timeout_seconds)
        target = self.output_path(job)
        job_log.info(f"Starting processing job (ID: {job.job_id}). Output target: {target}")

        try:
            ensure_writable_dir(target.parent, "output")
            ensure_writable_dir(self.settings.storage_temp_dir, "temp")
        except MergeServiceError as exc:
            self._fail(exc, job_log)
            raise

        with ScratchSet(self.settings.storage_temp_dir, job.job_id, job_log) as scratch:
            try:
                artifact = await self._execute(job, scratch, job_log, deadline, target, base_url)
            except MergeServiceError as exc:
                self._fail(exc, job_log)
                raise
            except asyncio.CancelledError:
                self._transition(JobState.FAILED, job_log)
                job_log.error("Job cancelled.")
                raise
            except Exception as exc:
                self._transition(JobState.FAILED, job_log)
                job_log.failure(f"Unexpected error: {exc}", 500, limit=self.settings.log_context_chars)
                logger.exception("Merge job crashed", extra={"job_id": job.job_id})
                raise

        job_log.info(f"Processing successful. Final video URL: {artifact.url}")
        return artifact

    async def _execute(
        self,
        job: MergeJob,
        scratch: ScratchSet,
        job_log: JobLog,
        deadline: Deadline,
        target: Path,
        base_url: str,
    ) -> PublishedArtifact:
        self._transition(JobState.DOWNLOADING, job_log)
        job_log.info("Starting file downloads...")
        video_paths: list[Path] = []
        for index, url in enumerate(job.video_urls):
            downloaded = await self.fetcher.fetch(url, f"vid{index}", scratch, job_log, deadline)
            video_paths.append(downloaded.path)
        audio_path: Path | None = None
        if job.audio_url:
            audio_path = (await self.fetcher.fetch(job.audio_url, "audio", scratch, job_log, deadline)).path
        job_log.info("File downloads attempted.")

        if len(video_paths) > 1:
            self._transition(JobState.MERGING, job_log)
        current = await stitch_videos(video_paths, scratch, self.encoder, job_log, deadline)

        if audio_path is not None:
            self._transition(JobState.AUDIO_REPLACING, job_log)
            muxed = scratch.allocate("with_audio", "mp4").path
            await replace_audio(current, audio_path, muxed, self.encoder, job_log, deadline)
            current = muxed
        else:
            job_log.info("No new audio track specified.")

        self._transition(JobState.PUBLISHING, job_log)
        deadline.check("publishing")
        loop = asyncio.get_running_loop()
        artifact = await loop.run_in_executor(
            None,
            publish,
            current,
            target,
            scratch,
            job_log,
            self.settings.storage_dir,
            base_url,
        )
        self._transition(JobState.SUCCEEDED, job_log)
        return artifact

    def _fail(self, exc: MergeServiceError, job_log: JobLog) -> None:
        self._transition(JobState.FAILED, job_log)
        job_log.failure(
            exc.message,
            exc.status_code,
            context=exc.details,
            limit=self.settings.log_context_chars,
        )
