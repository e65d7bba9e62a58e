from __future__ import annotations

import asyncio
import sys

import pytest

from clipmerge.core.config import Settings
from clipmerge.core.deadline import Deadline
from clipmerge.core.exceptions import EncoderNotFoundError, JobTimeoutError, MergeFailedError
from clipmerge.models.job import EncoderInvocation
from clipmerge.services.encoder import EncoderAdapter, classify_failure


def test_exit_127_means_encoder_missing():
    result = classify_failure(127, "", "/bin/ffmpeg")
    assert result.kind == "not_found"
    assert "/bin/ffmpeg" in result.message


def test_missing_text_with_binary_path_means_encoder_missing():
    output = "sh: /opt/ffmpeg: No such file or directory"
    assert classify_failure(1, output, "/opt/ffmpeg").kind == "not_found"


def test_missing_input_file_is_not_a_missing_encoder():
    output = "/tmp/in.mp4: No such file or directory"
    result = classify_failure(1, output, "/bin/ffmpeg")
    assert result.kind == "potential"
    assert result.message == "FFmpeg potentially failed: /tmp/in.mp4: No such file or directory"


BANNER = (
    "ffmpeg version 6.1.1 Copyright (c) 2000-2023 the FFmpeg developers\n"
    "  built with gcc 13 (GCC)\n"
)


def test_version_banner_does_not_make_missing_input_a_missing_encoder():
    output = BANNER + (
        "[concat @ 0x55d] Impossible to open '/srv/temp/job_vid1_ab.mp4'\n"
        "/srv/temp/job_concat_list_cd.txt: No such file or directory\n"
    )
    result = classify_failure(1, output, "ffmpeg")
    assert result.kind == "potential"
    assert result.message == "FFmpeg potentially failed: /srv/temp/job_concat_list_cd.txt: No such file or directory"


def test_shell_not_found_message_names_default_binary():
    assert classify_failure(1, "sh: 1: ffmpeg: not found", "ffmpeg").kind == "not_found"


def test_error_prefixed_line_wins_over_earlier_indicator():
    output = "\n".join(
        [
            "Input #0, mov,mp4 from 'a.mp4':",
            "  Stream mapping failed somewhere",
            "Error: Conversion failed!",
            "fatal: codec not found",
        ]
    )
    result = classify_failure(1, output, "ffmpeg")
    assert result.kind == "error"
    assert result.message == "FFmpeg execution failed: Error: Conversion failed!"


def test_error_prefix_without_indicator_is_ignored():
    result = classify_failure(1, "error: something odd\nlast line", "ffmpeg")
    assert result.kind == "generic"


def test_generic_message_collapses_whitespace_and_bounds_tail():
    lines = [f"line {i}   with    spaces" for i in range(10)] + ["x" * 1000]
    result = classify_failure(2, "\n".join(lines), "ffmpeg", tail_lines=5, tail_chars=350)
    assert result.kind == "generic"
    prefix = "FFmpeg failed with exit code 2. Full output logged. Tail of output: "
    assert result.message.startswith(prefix)
    tail = result.message[len(prefix):]
    assert len(tail) == 350
    assert tail.startswith("line 6 with spaces line 7")


def test_classification_is_deterministic():
    output = "frame= 10\n[mp4 @ 0x1] Could not open file out.mp4\n"
    assert classify_failure(1, output, "ffmpeg") == classify_failure(1, output, "ffmpeg")


def _python_encoder(tmp_path) -> EncoderAdapter:
    settings = Settings(
        storage_dir=tmp_path / "storage",
        storage_output_dir=tmp_path / "storage" / "outputs",
        storage_temp_dir=tmp_path / "storage" / "temp",
        ffmpeg_path=sys.executable,
    )
    return EncoderAdapter(settings)


def test_invoke_captures_interleaved_output_and_status(tmp_path, job_log):
    encoder = _python_encoder(tmp_path)
    script = "import sys; print('to stdout', flush=True); print('to stderr', file=sys.stderr); sys.exit(3)"

    invocation = asyncio.run(encoder.invoke(["-c", script], job_log, Deadline(30)))

    assert invocation.exit_status == 3
    assert "to stdout" in invocation.output
    assert "to stderr" in invocation.output
    assert invocation.argv == [sys.executable, "-c", script]
    log_text = job_log.path.read_text()
    assert "Executing FFmpeg:" in log_text
    assert "Return Code: 3" in log_text


def test_invoke_missing_binary_reports_127(settings, job_log):
    settings.ffmpeg_path = "/nonexistent/ffmpeg-binary"
    encoder = EncoderAdapter(settings)

    invocation = asyncio.run(encoder.invoke(["-version"], job_log, Deadline(30)))

    assert invocation.exit_status == 127
    error = encoder.failure_error(invocation, MergeFailedError)
    assert isinstance(error, EncoderNotFoundError)


def test_invoke_kills_process_when_budget_runs_out(tmp_path, job_log):
    encoder = _python_encoder(tmp_path)

    with pytest.raises(JobTimeoutError):
        asyncio.run(
            encoder.invoke(["-c", "import time; time.sleep(30)"], job_log, Deadline(0.5), stage="merge")
        )
    assert "exceeding the job time budget" in job_log.path.read_text()


def test_failure_error_uses_classified_message(settings):
    encoder = EncoderAdapter(settings)
    invocation = EncoderInvocation(
        argv=["ffmpeg"], exit_status=1, output="Error: does not match any stream"
    )
    error = encoder.failure_error(invocation, MergeFailedError)
    assert isinstance(error, MergeFailedError)
    assert error.message == "FFmpeg execution failed: Error: does not match any stream"
    assert error.details == invocation.output
