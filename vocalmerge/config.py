"""VOCALMERGE global configuration."""

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 3000
    env: str = "development"
    public_base_url: str = "http://localhost:3000"
    cors_origins: list[str] = ["http://localhost:3000"]

    # Paths
    temp_dir: Path = Path("/tmp/vocalmerge")  # noqa: S108
    output_dir: Path = Path("/tmp/vocalmerge/outputs")  # noqa: S108

    # External binaries
    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"

    # Delivery: "referenced" (JSON + /video/{uid}) or "inline" (raw bytes)
    delivery_mode: Literal["referenced", "inline"] = "referenced"
    serve_grace_s: float = 300.0
    orphan_ttl_s: float = 3600.0
    cache_max_age_s: int = 300

    # Mix defaults
    default_voice_gain: float = 0.6
    default_track_gain: float = 1.7
    count_in_trim_s: float = 5.1
    scale_video: bool = True
    output_width: int = 640
    output_height: int = 360
    video_bitrate: str = "800k"
    audio_bitrate: str = "192k"

    # Timeouts (seconds)
    transcode_timeout_s: float = 600.0
    probe_timeout_s: float = 30.0
    download_timeout_s: float = 120.0

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    model_config = {"env_prefix": "VOCALMERGE_"}


settings = Settings()
