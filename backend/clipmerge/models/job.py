"""
Merge job models.
"""

from __future__ import annotations

import re
import secrets
import time
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from clipmerge.core.exceptions import InvalidInputError

_URL_ADAPTER = TypeAdapter(AnyHttpUrl)
_NAME_STRIP = re.compile(r"[^a-zA-Z0-9_-]")
_FOLDER_STRIP = re.compile(r"[^a-zA-Z0-9_./-]")

# Keeps scratch and output file names well under the 255-byte filename limit.
MAX_NAME_LENGTH = 64


class JobState(str, Enum):
    ACCEPTED = "accepted"
    DOWNLOADING = "downloading"
    MERGING = "merging"
    AUDIO_REPLACING = "audio_replacing"
    PUBLISHING = "publishing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_STATES = frozenset({JobState.SUCCEEDED, JobState.FAILED})

# Forward-only pipeline order; FAILED is reachable from any non-terminal state.
STATE_ORDER = [
    JobState.ACCEPTED,
    JobState.DOWNLOADING,
    JobState.MERGING,
    JobState.AUDIO_REPLACING,
    JobState.PUBLISHING,
    JobState.SUCCEEDED,
]


def is_valid_url(value: Any) -> bool:
    """True for a string holding an absolute http(s) URL with a host."""
    if not isinstance(value, str) or not value.strip():
        return False
    try:
        _URL_ADAPTER.validate_python(value)
    except ValidationError:
        return False
    return True


def sanitize_name(raw: Any, default: str) -> str:
    if not isinstance(raw, str) or not raw:
        return default
    cleaned = _NAME_STRIP.sub("", raw.replace(" ", "-"))
    return cleaned or default


def sanitize_folder(raw: Any, default: str) -> str:
    if not isinstance(raw, str):
        return default
    cleaned = _FOLDER_STRIP.sub("", raw).replace("..", "").strip("/")
    return cleaned or default


def random_suffix(nbytes: int = 4) -> str:
    return secrets.token_hex(nbytes)


class MergeRequest(BaseModel):
    """Validated request body."""

    model_config = ConfigDict(frozen=True)

    videos: list[str] = Field(min_length=1)
    audio: Optional[str] = None
    name: Optional[str] = None
    folder: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Any) -> "MergeRequest":
        """Validate a decoded JSON payload, raising ``InvalidInputError``."""
        if not isinstance(data, dict):
            raise InvalidInputError("JSON key 'videos' (array of URLs) is required.")

        videos = data.get("videos")
        if not isinstance(videos, list) or not videos:
            raise InvalidInputError("JSON key 'videos' (array of URLs) is required.")
        for index, url in enumerate(videos):
            if not is_valid_url(url):
                raise InvalidInputError(f"Invalid URL in 'videos' array at index {index}: {url}")

        audio = data.get("audio")
        if audio is not None and not is_valid_url(audio):
            raise InvalidInputError("Invalid URL provided for 'audio'.")

        name = data.get("name")
        if isinstance(name, str) and len(sanitize_name(name, "")) > MAX_NAME_LENGTH:
            raise InvalidInputError(f"Value for 'name' must be at most {MAX_NAME_LENGTH} characters.")
        folder = data.get("folder")
        return cls(
            videos=videos,
            audio=audio,
            name=name if isinstance(name, str) else None,
            folder=folder if isinstance(folder, str) else None,
        )


class MergeJob(BaseModel):
    """One merge request, immutable once accepted."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    base_name: str
    created_at: int
    video_urls: tuple[str, ...]
    audio_url: Optional[str] = None
    folder: str
    output_filename: str

    @classmethod
    def create(
        cls,
        videos: list[str] | tuple[str, ...],
        audio: str | None,
        base_name: str,
        folder: str,
        created_at: int | None = None,
    ) -> "MergeJob":
        ts = int(time.time()) if created_at is None else created_at
        return cls(
            job_id=f"{base_name}_{ts}",
            base_name=base_name,
            created_at=ts,
            video_urls=tuple(videos),
            audio_url=audio,
            folder=folder,
            output_filename=f"{base_name}_{ts}_{random_suffix(2)}.mp4",
        )

    @property
    def log_filename(self) -> str:
        return f"{self.job_id}.log"


class ScratchFile(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: Path
    origin: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ConcatList(BaseModel):
    """Ordered manifest consumed by the concat demuxer."""

    model_config = ConfigDict(frozen=True)

    entries: tuple[Path, ...]

    @staticmethod
    def quote(path: Path) -> str:
        escaped = str(path).replace("'", "'\\''")
        return f"'{escaped}'"

    def render(self) -> str:
        return "".join(f"file {self.quote(entry)}\n" for entry in self.entries)


class EncoderInvocation(BaseModel):
    argv: list[str]
    exit_status: int
    output: str = ""

    @property
    def succeeded(self) -> bool:
        return self.exit_status == 0


class PublishedArtifact(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: Path
    url: str
    method: str  # "rename" or "copy"
