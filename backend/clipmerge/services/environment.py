"""
Environment self-check reported by ``GET /merge``.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from clipmerge.core.config import Settings
from clipmerge.services.encoder import NOT_FOUND_EXIT_STATUS, EncoderAdapter


def describe_encoder(exit_status: int, output: str) -> str:
    lowered = output.lower()
    if exit_status == 0 and "ffmpeg version" in lowered:
        return "installed"
    if exit_status == NOT_FOUND_EXIT_STATUS or "no such file" in lowered or "not found" in lowered:
        return "not_found"
    return "unknown"


def _dir_status(path: Path) -> dict[str, Any]:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        pass
    return {"path": str(path), "writable": path.is_dir() and os.access(path, os.W_OK)}


async def check_environment(settings: Settings, encoder: EncoderAdapter | None = None) -> dict[str, Any]:
    encoder = encoder or EncoderAdapter(settings)
    exit_status, output = await encoder.probe_version()
    status = describe_encoder(exit_status, output)
    first_line = output.splitlines()[0] if output else ""

    directories = {
        "output": _dir_status(settings.storage_output_dir),
        "temp": _dir_status(settings.storage_temp_dir),
    }
    ready = status == "installed" and all(d["writable"] for d in directories.values())
    return {
        "ready": ready,
        "ffmpeg": {
            "path": settings.ffmpeg_path,
            "status": status,
            "version": first_line if status == "installed" else None,
        },
        "directories": directories,
    }
