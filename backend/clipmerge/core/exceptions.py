"""
Merge service error types.

Every stage raises one of these; the orchestrator and the API layer are the
only places that turn them into log entries and HTTP responses. ``message`` is
the concise, user-facing text. Anything verbose belongs in ``details`` and
only ever reaches the job log.
"""


class MergeServiceError(Exception):
    """Base exception for all merge-job failures."""

    status_code = 500

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(message)


class InvalidInputError(MergeServiceError):
    """Malformed request body or URL."""

    status_code = 400


class DownloadFailedError(MergeServiceError):
    """A remote resource could not be fetched intact."""

    status_code = 400

    def __init__(
        self,
        url: str,
        kind: str,
        http_status: int | None = None,
        disk_size: int = -1,
        expected_size: int | None = None,
        transport_error: str = "",
    ):
        self.url = url
        self.kind = kind
        self.http_status = http_status
        self.disk_size = disk_size
        self.expected_size = expected_size
        self.transport_error = transport_error
        size_info = f"(Disk: {disk_size} / Header: {expected_size if expected_size is not None else -1})"
        super().__init__(
            f"Failed to download {kind} file from: {url} "
            f"(HTTP: {http_status if http_status is not None else 0}, "
            f"Size: {size_info}, Error: {transport_error})"
        )


class EncoderNotFoundError(MergeServiceError):
    """The configured encoder binary is missing or not executable."""

    def __init__(self, ffmpeg_path: str, details: str | None = None):
        self.ffmpeg_path = ffmpeg_path
        super().__init__(
            "FFmpeg execution failed: Command not found or inaccessible. "
            f"Path used: '{ffmpeg_path}'. Verify path and OS permissions.",
            details,
        )


class MergeFailedError(MergeServiceError):
    """Both the stream-copy and the re-encode concatenation failed."""


class AudioMuxFailedError(MergeServiceError):
    """Replacing the audio track failed."""


class PublishFailedError(MergeServiceError):
    """The finished video could not be moved to its public location."""

    def __init__(self, source: str, target: str, reason: str):
        self.source = source
        self.target = target
        self.reason = reason
        super().__init__(
            f"Failed to move intermediate video to final destination. Copy error: {reason}",
            f"source={source} target={target}",
        )


class ScratchSetupError(MergeServiceError):
    """Scratch or output directory is missing and cannot be created, or is read-only."""


class JobTimeoutError(MergeServiceError):
    """The job exceeded its overall time budget."""

    status_code = 504

    def __init__(self, stage: str, budget_seconds: float):
        self.stage = stage
        self.budget_seconds = budget_seconds
        super().__init__(
            f"Job exceeded its time budget of {budget_seconds:g}s during {stage}."
        )


class MethodNotAllowedError(MergeServiceError):
    status_code = 405

    def __init__(self):
        super().__init__("Method not allowed. Use GET for documentation or POST with JSON body.")
