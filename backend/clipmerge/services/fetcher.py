"""
Fetcher - downloads a remote video or audio file into a scratch file.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from urllib.parse import urlparse

import httpx

from clipmerge.core.config import Settings
from clipmerge.core.deadline import Deadline
from clipmerge.core.exceptions import DownloadFailedError, InvalidInputError, JobTimeoutError
from clipmerge.core.logging import JobLog
from clipmerge.models.job import ScratchFile, is_valid_url
from clipmerge.services.scratch import ScratchSet

VIDEO_EXTENSIONS = {"mp4", "mov", "avi", "webm", "mkv", "flv", "wmv"}
AUDIO_EXTENSIONS = {"mp3", "wav", "aac", "m4a", "ogg", "flac"}
DEFAULT_VIDEO_EXTENSION = "mp4"
DEFAULT_AUDIO_EXTENSION = "mp3"


def _is_video(kind: str) -> bool:
    return kind.startswith("vid")


def pick_extension(url: str, kind: str) -> str:
    """Extension from the URL path if allow-listed for ``kind``, else a default."""
    suffix = Path(urlparse(url).path).suffix.lower().lstrip(".")
    if _is_video(kind):
        return suffix if suffix in VIDEO_EXTENSIONS else DEFAULT_VIDEO_EXTENSION
    if kind == "audio":
        return suffix if suffix in AUDIO_EXTENSIONS else DEFAULT_AUDIO_EXTENSION
    return "tmp"


def _expected_size(response: httpx.Response) -> int | None:
    if response.headers.get("content-encoding"):
        return None
    raw = response.headers.get("content-length")
    if raw is None or not raw.strip().isdigit():
        return None
    return int(raw)


class Fetcher:
    """Downloads remote resources with bounded redirects and timeouts."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.settings = settings
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(
            self.settings.download_timeout,
            connect=self.settings.download_connect_timeout,
        )
        return httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            max_redirects=self.settings.download_max_redirects,
            verify=True,
            transport=self._transport,
        )

    async def fetch(
        self,
        url: str,
        kind: str,
        scratch: ScratchSet,
        job_log: JobLog,
        deadline: Deadline,
    ) -> ScratchFile:
        if not is_valid_url(url):
            raise InvalidInputError(f"Invalid URL provided for {kind}: {url}")

        deadline.check(f"download of {kind}")
        target = scratch.allocate(kind, pick_extension(url, kind))
        job_log.info(f"Downloading {kind} file from {url}")

        http_status: int | None = None
        expected: int | None = None
        transport_error = ""
        budget = deadline.bound(self.settings.download_timeout)
        try:
            http_status, expected = await asyncio.wait_for(
                self._transfer(url, target.path), timeout=budget
            )
        except asyncio.TimeoutError:
            if deadline.expired:
                self._discard(target.path)
                raise JobTimeoutError(f"download of {kind}", deadline.budget_seconds)
            transport_error = f"Operation timed out after {budget:g} seconds"
        except httpx.HTTPStatusError as exc:
            http_status = exc.response.status_code
            transport_error = f"The requested URL returned error: {http_status}"
        except (httpx.HTTPError, OSError) as exc:
            transport_error = str(exc) or exc.__class__.__name__

        disk_size = target.path.stat().st_size if target.path.exists() else -1
        if (
            transport_error
            or (http_status is not None and http_status >= 400)
            or disk_size <= 0
            or (expected is not None and expected > 0 and disk_size != expected)
        ):
            self._discard(target.path)
            error = DownloadFailedError(
                url,
                kind,
                http_status=http_status,
                disk_size=disk_size,
                expected_size=expected,
                transport_error=transport_error,
            )
            job_log.error(error.message)
            raise error

        job_log.info(f"{kind} file download complete: {target.path}")
        return target

    async def _transfer(self, url: str, destination: Path) -> tuple[int, int | None]:
        async with self._client() as client:
            async with client.stream("GET", url) as response:
                if response.status_code >= 400:
                    raise httpx.HTTPStatusError(
                        f"HTTP {response.status_code}",
                        request=response.request,
                        response=response,
                    )
                expected = _expected_size(response)
                loop = asyncio.get_running_loop()
                handle = await loop.run_in_executor(None, open, destination, "wb")
                try:
                    async for chunk in response.aiter_bytes(self.settings.download_chunk_size):
                        await loop.run_in_executor(None, handle.write, chunk)
                finally:
                    handle.close()
                return response.status_code, expected

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
