"""
Merge API - accepts merge jobs and documents how to call them.
"""

from __future__ import annotations

import json
import time

from fastapi import APIRouter, Depends, Request

from clipmerge.core.config import Settings, get_settings
from clipmerge.core.exceptions import InvalidInputError, MethodNotAllowedError, ScratchSetupError
from clipmerge.core.logging import get_job_logger, get_logger
from clipmerge.models.job import MAX_NAME_LENGTH, MergeJob, MergeRequest, sanitize_folder, sanitize_name
from clipmerge.services.encoder import EncoderAdapter
from clipmerge.services.environment import check_environment
from clipmerge.services.merge_pipeline import MergePipeline

logger = get_logger(__name__)
router = APIRouter(tags=["Merge"])


def get_encoder(settings: Settings = Depends(get_settings)) -> EncoderAdapter:
    return EncoderAdapter(settings)


def get_merge_pipeline(
    settings: Settings = Depends(get_settings),
    encoder: EncoderAdapter = Depends(get_encoder),
) -> MergePipeline:
    return MergePipeline(settings, encoder=encoder)


def _public_base(request: Request, settings: Settings) -> str:
    return (settings.public_base_url or str(request.base_url)).rstrip("/")


@router.post("/merge")
async def merge_videos(
    request: Request,
    settings: Settings = Depends(get_settings),
    pipeline: MergePipeline = Depends(get_merge_pipeline),
):
    """
    Download the given videos, concatenate them, optionally replace the audio,
    and return the public URL of the result.
    """
    body = await request.body()
    json_error: str | None = None
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        data = None
        json_error = str(exc)

    payload = data if isinstance(data, dict) else {}
    folder = sanitize_folder(payload.get("folder"), settings.default_output_folder)
    name = sanitize_name(payload.get("name"), settings.default_output_name)
    if len(name) > MAX_NAME_LENGTH:
        # rejected below, but the rejection still needs a log file
        name = settings.default_output_name
    created_at = int(time.time())
    job_id = f"{name}_{created_at}"
    log_path = settings.storage_output_dir / folder / f"{job_id}.log"

    try:
        job_log = get_job_logger(job_id, log_path)
    except OSError as exc:
        logger.error("Cannot open job log", extra={"job_id": job_id, "error": str(exc)})
        raise ScratchSetupError(f"Failed to create output directory: {log_path.parent}.", str(exc)) from exc

    with job_log:
        try:
            if json_error is not None:
                raise InvalidInputError(f"Invalid JSON received: {json_error}")
            merge_request = MergeRequest.from_payload(data)
        except InvalidInputError as exc:
            job_log.failure(
                exc.message,
                exc.status_code,
                context=body.decode("utf-8", errors="replace"),
                limit=settings.log_context_chars,
            )
            raise

        job = MergeJob.create(
            videos=merge_request.videos,
            audio=merge_request.audio,
            base_name=name,
            folder=folder,
            created_at=created_at,
        )
        logger.info(f"Accepted merge job {job.job_id} with {len(job.video_urls)} video(s)")
        artifact = await pipeline.run(job, job_log, _public_base(request, settings))

    return {"url": artifact.url}


@router.get("/merge")
async def merge_usage(
    request: Request,
    settings: Settings = Depends(get_settings),
    encoder: EncoderAdapter = Depends(get_encoder),
):
    """Usage notes plus the status of ffmpeg and the storage directories."""
    base = _public_base(request, settings)
    example = {
        "videos": [
            "https://REQUIRED_URL/path/to/video1.mp4",
            "https://REQUIRED_URL/path/to/video2.mp4",
        ],
        "audio": "https://OPTIONAL_URL/path/to/new_audio.mp3",
        "name": "my-merged-video",
        "folder": settings.default_output_folder,
    }
    return {
        "endpoint": f"{base}/merge",
        "method": "POST",
        "content_type": "application/json",
        "example_request": example,
        "example_response": {
            "url": f"{base}/storage/outputs/{settings.default_output_folder}/your-video-name_timestamp_random.mp4"
        },
        "example_error": {"error": "Concise error message. Check the job .log file for full FFmpeg output."},
        "status": await check_environment(settings, encoder),
    }


@router.api_route("/merge", methods=["PUT", "PATCH", "DELETE"], include_in_schema=False)
async def merge_method_not_allowed():
    raise MethodNotAllowedError()
