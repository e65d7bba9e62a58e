"""
Application configuration management using Pydantic Settings.
All configuration values can be overridden via environment variables.
"""

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


BACKEND_ROOT = Path(__file__).resolve().parents[2]
PROJECT_ROOT = BACKEND_ROOT.parent
ENV_FILE = BACKEND_ROOT / ".env"


def _resolve_path(path: Path) -> Path:
    if path.is_absolute():
        return path
    return PROJECT_ROOT / path


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ===================
    # Application Settings
    # ===================
    app_name: str = "Video Merge API"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"

    # ===================
    # API Settings
    # ===================
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    public_base_url: str | None = None  # falls back to the request base URL

    # ===================
    # Encoder Settings (FFmpeg)
    # ===================
    ffmpeg_path: str = "ffmpeg"
    video_codec: str = "libx264"
    video_crf: int = 23  # Quality (lower = better, 18-28 recommended)
    concat_preset: str = "medium"
    audio_mux_preset: str = "fast"
    audio_codec: str = "aac"
    concat_audio_bitrate: str = "128k"
    audio_mux_bitrate: str = "160k"
    min_output_bytes: int = 1024

    # ===================
    # Download Settings
    # ===================
    download_connect_timeout: float = 30.0  # seconds
    download_timeout: float = 300.0  # seconds, whole transfer
    download_max_redirects: int = 10
    download_chunk_size: int = 1024 * 1024

    # ===================
    # Storage Settings
    # ===================
    storage_dir: Path = Path("storage")
    storage_output_dir: Path = Path("storage/outputs")
    storage_temp_dir: Path = Path("storage/temp")
    default_output_folder: str = "merged_videos"
    default_output_name: str = "merged_video"

    # ===================
    # Processing Limits
    # ===================
    job_timeout_seconds: float = 600.0
    error_tail_lines: int = 5
    error_tail_chars: int = 350
    log_context_chars: int = 2048

    def model_post_init(self, __context) -> None:
        for attr in ("storage_dir", "storage_output_dir", "storage_temp_dir"):
            value = getattr(self, attr)
            if isinstance(value, Path):
                setattr(self, attr, _resolve_path(value))

    def ensure_directories(self) -> None:
        """Create all required storage directories."""
        for dir_path in [
            self.storage_dir,
            self.storage_output_dir,
            self.storage_temp_dir,
        ]:
            dir_path.mkdir(parents=True, exist_ok=True)


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """FastAPI dependency returning the active settings."""
    return settings
