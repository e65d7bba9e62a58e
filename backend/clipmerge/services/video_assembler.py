"""
Audio Replacement - swaps the soundtrack of a video for a downloaded track.
"""

from __future__ import annotations

from pathlib import Path

from clipmerge.core.deadline import Deadline
from clipmerge.core.exceptions import AudioMuxFailedError, MergeServiceError
from clipmerge.core.logging import JobLog
from clipmerge.core.config import Settings
from clipmerge.services.encoder import EncoderAdapter, discard_output, output_is_valid


def build_audio_replace_args(video_path: Path, audio_path: Path, output: Path, settings: Settings) -> list[str]:
    # -shortest: output length is min(video, audio), never padded
    return [
        "-y",
        "-i", str(video_path),
        "-i", str(audio_path),
        "-map", "0:v:0",
        "-map", "1:a:0",
        "-c:v", settings.video_codec,
        "-preset", settings.audio_mux_preset,
        "-crf", str(settings.video_crf),
        "-c:a", settings.audio_codec,
        "-b:a", settings.audio_mux_bitrate,
        "-shortest",
        str(output),
    ]


async def replace_audio(
    video_path: Path,
    audio_path: Path,
    output_path: Path,
    encoder: EncoderAdapter,
    job_log: JobLog,
    deadline: Deadline,
) -> None:
    """Swap the audio of ``video_path`` for the first audio stream of ``audio_path``."""
    settings = encoder.settings
    job_log.info("Adding new audio track (replacing existing)...")

    invocation = await encoder.invoke(
        build_audio_replace_args(video_path, audio_path, output_path, settings),
        job_log,
        deadline,
        stage="audio replacement",
    )
    if invocation.succeeded and output_is_valid(output_path, settings.min_output_bytes):
        job_log.info("Audio addition completed successfully.")
        return

    discard_output(output_path)
    error: MergeServiceError
    if not invocation.succeeded:
        error = encoder.failure_error(invocation, AudioMuxFailedError)
    else:
        error = AudioMuxFailedError(
            "Failed to add audio track (output file small/missing).", invocation.output
        )
    raise error
