"""VOCALMERGE Console — vocal + backing-track mixdown via ffmpeg.

Voice chain (in order):
  ① Count-in trim (input seek)
  ② Resample / timestamp normalization
  ③ High-pass (rumble)
  ④ Noise gate, strict
  ⑤ Noise gate, loose
  ⑥ Presence boost (+3 dB @ 1.8 kHz)
  ⑦ Sibilance cut (−2 dB @ 8 kHz)
  ⑧ Voice gain

Track chain: gain only. The backing track leads the amix so its length is
authoritative (duration=first); ``-shortest`` truncates the container.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import structlog

from vocalmerge.config import settings
from vocalmerge.console.process import ProcessTimeout, run_process
from vocalmerge.errors import OutputMissing, TranscodeFailed

logger = structlog.get_logger()


# ── Types ────────────────────────────────────────────────


@dataclass(frozen=True)
class GateStage:
    """One ``agate`` stage. Short attack, long release to avoid pumping."""

    threshold_db: float
    ratio: float
    attack_ms: float = 5.0
    release_ms: float = 200.0

    def to_filter(self) -> str:
        return (
            f"agate=threshold={self.threshold_db:g}dB:ratio={self.ratio:g}"
            f":attack={self.attack_ms:g}:release={self.release_ms:g}"
        )


@dataclass(frozen=True)
class EqBand:
    """One peaking ``equalizer`` band (width in Hz)."""

    freq_hz: float
    gain_db: float
    width_hz: float

    def to_filter(self) -> str:
        return f"equalizer=f={self.freq_hz:g}:width_type=h:width={self.width_hz:g}:g={self.gain_db:g}"


DEFAULT_GATES: tuple[GateStage, ...] = (
    GateStage(threshold_db=-35.0, ratio=4.0, attack_ms=5.0, release_ms=200.0),
    GateStage(threshold_db=-42.0, ratio=2.0, attack_ms=5.0, release_ms=300.0),
)

PRESENCE_BOOST = EqBand(freq_hz=1800.0, gain_db=3.0, width_hz=200.0)
SIBILANCE_CUT = EqBand(freq_hz=8000.0, gain_db=-2.0, width_hz=1000.0)

HIGHPASS_HZ = 100.0
DROPOUT_TRANSITION_S = 2.0
OUTPUT_MEDIA_TYPE = "video/mp4"


@dataclass(frozen=True)
class MixJob:
    """Everything ffmpeg needs for one merge. Immutable once built."""

    voice_path: Path
    track_path: Path
    output_path: Path
    voice_gain: float = 0.6
    track_gain: float = 1.7
    count_in_trim_s: float = 5.1
    include_video: bool = True
    scale: tuple[int, int] | None = (640, 360)
    video_bitrate: str = "800k"
    audio_bitrate: str = "192k"
    gates: tuple[GateStage, ...] = field(default=DEFAULT_GATES)

    @property
    def voice_chain(self) -> str:
        stages = [
            "aresample=async=1:first_pts=0",
            f"highpass=f={HIGHPASS_HZ:g}",
            *(gate.to_filter() for gate in self.gates),
            PRESENCE_BOOST.to_filter(),
            SIBILANCE_CUT.to_filter(),
            f"volume={self.voice_gain:g}",
        ]
        return ",".join(stages)

    @property
    def filter_graph(self) -> str:
        parts = [
            f"[0:a]{self.voice_chain}[voice]",
            f"[1:a]volume={self.track_gain:g}[track]",
            f"[track][voice]amix=inputs=2:duration=first:dropout_transition={DROPOUT_TRANSITION_S:g}[a]",
        ]
        if self.include_video and self.scale:
            w, h = self.scale
            parts.append(
                f"[1:v]scale=w={w}:h={h}:force_original_aspect_ratio=decrease,"
                f"scale=trunc(iw/2)*2:trunc(ih/2)*2[v]"
            )
        return ";".join(parts)

    def to_argv(self, ffmpeg_bin: str = "ffmpeg") -> list[str]:
        argv = [ffmpeg_bin, "-y", "-hide_banner", "-nostdin"]
        if self.count_in_trim_s > 0:
            argv += ["-ss", f"{self.count_in_trim_s:g}"]
        argv += ["-i", str(self.voice_path), "-i", str(self.track_path)]
        argv += ["-filter_complex", self.filter_graph]

        if self.include_video:
            if self.scale:
                argv += [
                    "-map", "[v]",
                    "-c:v", "libx264",
                    "-preset", "veryfast",
                    "-b:v", self.video_bitrate,
                    "-maxrate", self.video_bitrate,
                    "-bufsize", _double_bitrate(self.video_bitrate),
                    "-pix_fmt", "yuv420p",
                ]
            else:
                argv += ["-map", "1:v:0", "-c:v", "copy"]

        argv += [
            "-map", "[a]",
            "-c:a", "aac",
            "-b:a", self.audio_bitrate,
            "-shortest",
            "-movflags", "+faststart",
            str(self.output_path),
        ]
        return argv


def _double_bitrate(bitrate: str) -> str:
    """'800k' → '1600k' (ffmpeg rate-control buffer)."""
    suffix = bitrate[-1] if bitrate[-1:].isalpha() else ""
    number = bitrate[: -1] if suffix else bitrate
    try:
        return f"{int(float(number) * 2)}{suffix}"
    except ValueError:
        return bitrate


# ── Build & Run ──────────────────────────────────────────


def build_mix_job(
    voice_path: Path,
    track_path: Path,
    output_path: Path,
    voice_gain: float | None = None,
    track_gain: float | None = None,
    include_video: bool = True,
) -> MixJob:
    """MixJob with deployment defaults from settings."""
    return MixJob(
        voice_path=voice_path,
        track_path=track_path,
        output_path=output_path,
        voice_gain=settings.default_voice_gain if voice_gain is None else voice_gain,
        track_gain=settings.default_track_gain if track_gain is None else track_gain,
        count_in_trim_s=settings.count_in_trim_s,
        include_video=include_video,
        scale=(settings.output_width, settings.output_height) if settings.scale_video else None,
        video_bitrate=settings.video_bitrate,
        audio_bitrate=settings.audio_bitrate,
    )


def run_mix(job: MixJob, timeout_s: float | None = None) -> Path:
    """Execute ``job`` with ffmpeg. Blocking.

    Raises:
        TranscodeFailed: non-zero exit, timeout, or ffmpeg missing.
        OutputMissing: exit 0 but no (or empty) output file.
    """
    argv = job.to_argv(settings.ffmpeg_bin)
    logger.info(
        "mix.start",
        voice=str(job.voice_path),
        track=str(job.track_path),
        output=str(job.output_path),
        voice_gain=job.voice_gain,
        track_gain=job.track_gain,
    )
    logger.debug("mix.command", argv=argv)

    try:
        result = run_process(argv, timeout_s or settings.transcode_timeout_s)
    except ProcessTimeout as e:
        raise TranscodeFailed("FFmpeg processing timed out", details=e.stderr[-2000:] or str(e)) from e
    except FileNotFoundError as e:
        raise TranscodeFailed("FFmpeg binary not found", details=str(e)) from e

    if not result.ok:
        logger.error("mix.failed", returncode=result.returncode, stderr=result.stderr_tail(500))
        raise TranscodeFailed("FFmpeg processing failed", details=result.stderr_tail())

    if not job.output_path.exists() or job.output_path.stat().st_size == 0:
        logger.error("mix.output_missing", output=str(job.output_path))
        raise OutputMissing("Merge output file not created", details=str(job.output_path))

    logger.info(
        "mix.complete",
        output=str(job.output_path),
        size_bytes=job.output_path.stat().st_size,
        elapsed_s=round(result.elapsed_s, 2),
    )
    return job.output_path
