"""
Concatenation Engine - joins downloaded clips with the ffmpeg concat demuxer.

A stream-copy pass is tried first. If it fails, or produces a missing or tiny
file, the same list is re-encoded to a baseline H.264/AAC format.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from clipmerge.core.config import Settings
from clipmerge.core.deadline import Deadline
from clipmerge.core.exceptions import MergeFailedError, MergeServiceError
from clipmerge.core.logging import JobLog
from clipmerge.models.job import ConcatList
from clipmerge.services.encoder import EncoderAdapter, discard_output, output_is_valid
from clipmerge.services.scratch import ScratchSet


def build_concat_args(list_file: Path, output: Path) -> list[str]:
    return [
        "-y",
        "-f", "concat",
        "-safe", "0",  # allows absolute paths
        "-i", str(list_file),
        "-c", "copy",
        str(output),
    ]


def build_reencode_args(list_file: Path, output: Path, settings: Settings) -> list[str]:
    return [
        "-y",
        "-f", "concat",
        "-safe", "0",
        "-i", str(list_file),
        "-c:v", settings.video_codec,
        "-preset", settings.concat_preset,
        "-crf", str(settings.video_crf),
        "-c:a", settings.audio_codec,
        "-b:a", settings.concat_audio_bitrate,
        str(output),
    ]


def write_concat_list(video_paths: Sequence[Path], scratch: ScratchSet) -> Path:
    """Serialize the clips, in the order given, into a scratch list file."""
    list_file = scratch.allocate("concat_list", "txt").path
    content = ConcatList(entries=tuple(Path(p) for p in video_paths)).render()
    try:
        list_file.write_text(content, encoding="utf-8")
    except OSError as exc:
        raise MergeFailedError(f"Failed to write FFmpeg list file: {list_file}", str(exc)) from exc
    return list_file


async def stitch_videos(
    video_paths: Sequence[Path],
    scratch: ScratchSet,
    encoder: EncoderAdapter,
    job_log: JobLog,
    deadline: Deadline,
) -> Path:
    """
    Concatenate clips into a single MP4, returning its scratch path.

    A single clip is returned unchanged without running the encoder.
    """
    if not video_paths:
        raise MergeFailedError("No valid video files available for processing.")

    if len(video_paths) == 1:
        only = Path(video_paths[0])
        job_log.info(f"Only one video provided, using directly: {only}")
        return only

    settings = encoder.settings
    job_log.info(f"Preparing to merge {len(video_paths)} videos...")
    list_file = write_concat_list(video_paths, scratch)
    job_log.info(f"Generated list file: {list_file}")
    output = scratch.allocate("merged", "mp4").path

    job_log.info(f"Attempting merge (-c copy) to: {output}")
    fast = await encoder.invoke(build_concat_args(list_file, output), job_log, deadline, stage="merge")
    if fast.succeeded and output_is_valid(output, settings.min_output_bytes):
        job_log.info("Merge via -c copy succeeded.")
        return output

    reason = encoder.classify(fast).message if not fast.succeeded else "Filesize check failed"
    job_log.warning(
        f"Merge with -c copy failed or produced small file. Attempting re-encode. Error: {reason}"
    )
    discard_output(output)

    fallback = await encoder.invoke(
        build_reencode_args(list_file, output, settings), job_log, deadline, stage="merge re-encode"
    )
    if fallback.succeeded and output_is_valid(output, settings.min_output_bytes):
        job_log.info("Merge via re-encoding succeeded.")
        return output

    discard_output(output)
    error: MergeServiceError
    if not fallback.succeeded:
        error = encoder.failure_error(fallback, MergeFailedError)
    else:
        error = MergeFailedError(
            "Failed to merge videos (re-encoding attempt also failed/small file).",
            fallback.output,
        )
    raise error
