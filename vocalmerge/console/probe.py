"""Stream probing via ffprobe."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from vocalmerge.config import settings
from vocalmerge.console.process import ProcessTimeout, run_process
from vocalmerge.errors import InvalidFormat

logger = structlog.get_logger()


@dataclass(frozen=True)
class StreamInventory:
    """Which stream types a media file carries."""

    has_video: bool
    has_audio: bool
    duration_s: float | None = None
    codecs: tuple[str, ...] = field(default_factory=tuple)

    def describe(self) -> str:
        return (
            f"video={self.has_video} audio={self.has_audio} "
            f"codecs={','.join(self.codecs) or 'none'}"
        )


def parse_probe_output(raw: str) -> StreamInventory:
    """Build an inventory from ``ffprobe -print_format json`` output."""
    info = json.loads(raw or "{}")
    streams = info.get("streams", [])
    kinds = {s.get("codec_type") for s in streams}
    codecs = tuple(s.get("codec_name", "?") for s in streams)

    duration: float | None = None
    fmt_duration = info.get("format", {}).get("duration")
    if fmt_duration is not None:
        try:
            duration = float(fmt_duration)
        except ValueError:
            duration = None

    return StreamInventory(
        has_video="video" in kinds,
        has_audio="audio" in kinds,
        duration_s=duration,
        codecs=codecs,
    )


def probe_streams(media_path: str | Path, timeout_s: float | None = None) -> StreamInventory:
    """Probe ``media_path`` for its streams.

    Raises:
        InvalidFormat: ffprobe could not read the file or timed out.
    """
    argv = [
        settings.ffprobe_bin,
        "-v", "error",
        "-print_format", "json",
        "-show_streams",
        "-show_format",
        str(media_path),
    ]
    try:
        result = run_process(argv, timeout_s or settings.probe_timeout_s)
    except ProcessTimeout as e:
        raise InvalidFormat("Media probe timed out", details=str(e)) from e

    if not result.ok:
        raise InvalidFormat(
            f"Unreadable media: {Path(media_path).name}",
            details=result.stderr_tail(500).strip() or f"ffprobe exit {result.returncode}",
        )

    try:
        inventory = parse_probe_output(result.stdout)
    except json.JSONDecodeError as e:
        raise InvalidFormat("Media probe returned malformed output", details=str(e)) from e

    logger.info("probe.done", path=str(media_path), streams=inventory.describe(), duration_s=inventory.duration_s)
    return inventory
