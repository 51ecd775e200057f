"""Mix engine tests — filter graph, argv, failure mapping, real ffmpeg run."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from unittest.mock import patch

import numpy as np
import pytest

from vocalmerge.console.mix import MixJob, build_mix_job, run_mix
from vocalmerge.console.process import ProcessResult, ProcessTimeout
from vocalmerge.ear.scoring import score_recording
from vocalmerge.errors import OutputMissing, TranscodeFailed

HAS_FFMPEG = shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


def _job(tmp_path: Path, **overrides) -> MixJob:
    params = {
        "voice_path": tmp_path / "voice.webm",
        "track_path": tmp_path / "track.mp4",
        "output_path": tmp_path / "out.mp4",
    }
    params.update(overrides)
    return MixJob(**params)


def _result(returncode: int, stderr: str = "") -> ProcessResult:
    return ProcessResult(argv=("ffmpeg",), returncode=returncode, stdout="", stderr=stderr, elapsed_s=0.1)


# ── Filter graph ─────────────────────────────────────────


def test_voice_chain_order(tmp_path: Path) -> None:
    chain = _job(tmp_path).voice_chain.split(",")
    names = [stage.split("=")[0] for stage in chain]
    assert names == [
        "aresample",
        "highpass",
        "agate",
        "agate",
        "equalizer",
        "equalizer",
        "volume",
    ]
    assert chain[1] == "highpass=f=100"
    assert chain[-1] == "volume=0.6"


def test_gate_cascade_first_stage_is_stricter(tmp_path: Path) -> None:
    first, second = _job(tmp_path).gates
    assert first.ratio > second.ratio
    assert first.threshold_db > second.threshold_db
    assert first.release_ms > first.attack_ms


def test_filter_graph_track_leads_amix(tmp_path: Path) -> None:
    graph = _job(tmp_path, voice_gain=0.9, track_gain=1.2).filter_graph
    assert "[1:a]volume=1.2[track]" in graph
    assert "volume=0.9[voice]" in graph
    assert "[track][voice]amix=inputs=2:duration=first:dropout_transition=2[a]" in graph
    assert "equalizer=f=1800" in graph and "g=3" in graph
    assert "equalizer=f=8000" in graph and "g=-2" in graph


def test_argv_scaled_video(tmp_path: Path) -> None:
    argv = _job(tmp_path).to_argv("ffmpeg")
    assert argv[argv.index("-ss") + 1] == "5.1"
    assert argv.index("-ss") < argv.index("-i")
    assert "[1:v]scale=w=640:h=360" in argv[argv.index("-filter_complex") + 1]
    assert argv[argv.index("-c:v") + 1] == "libx264"
    assert argv[argv.index("-b:v") + 1] == "800k"
    assert argv[argv.index("-bufsize") + 1] == "1600k"
    assert argv[argv.index("-b:a") + 1] == "192k"
    assert "-shortest" in argv
    assert argv[argv.index("-movflags") + 1] == "+faststart"
    assert argv[-1] == str(tmp_path / "out.mp4")


def test_argv_passthrough_video(tmp_path: Path) -> None:
    argv = _job(tmp_path, scale=None).to_argv()
    assert argv[argv.index("-c:v") + 1] == "copy"
    assert "1:v:0" in argv
    assert "[1:v]" not in argv[argv.index("-filter_complex") + 1]


def test_argv_audio_only_and_no_trim(tmp_path: Path) -> None:
    argv = _job(tmp_path, include_video=False, count_in_trim_s=0.0).to_argv()
    assert "-ss" not in argv
    assert "-c:v" not in argv
    assert "[1:v]" not in argv[argv.index("-filter_complex") + 1]


def test_build_mix_job_uses_defaults(tmp_path: Path) -> None:
    job = build_mix_job(tmp_path / "v", tmp_path / "t", tmp_path / "o")
    assert job.voice_gain == 0.6
    assert job.track_gain == 1.7
    assert job.count_in_trim_s == 5.1


def test_mix_job_is_immutable(tmp_path: Path) -> None:
    from dataclasses import FrozenInstanceError

    job = _job(tmp_path)
    with pytest.raises(FrozenInstanceError):
        job.voice_gain = 2.0  # type: ignore[misc]


# ── Failure mapping ──────────────────────────────────────


def test_nonzero_exit_is_transcode_failed(tmp_path: Path) -> None:
    with patch("vocalmerge.console.mix.run_process", return_value=_result(1, "Invalid data found")):
        with pytest.raises(TranscodeFailed) as excinfo:
            run_mix(_job(tmp_path))
    assert excinfo.value.status_code == 500
    assert "Invalid data found" in excinfo.value.details


def test_timeout_is_transcode_failed(tmp_path: Path) -> None:
    with patch("vocalmerge.console.mix.run_process", side_effect=ProcessTimeout(["ffmpeg"], 1.0)):
        with pytest.raises(TranscodeFailed):
            run_mix(_job(tmp_path), timeout_s=1.0)


def test_success_without_output_is_output_missing(tmp_path: Path) -> None:
    with patch("vocalmerge.console.mix.run_process", return_value=_result(0)):
        with pytest.raises(OutputMissing):
            run_mix(_job(tmp_path))


def test_success_with_output(tmp_path: Path) -> None:
    job = _job(tmp_path)

    def fake_run(argv, timeout_s):
        Path(argv[-1]).write_bytes(b"\x00\x00\x00\x18ftypmp42")
        return _result(0)

    with patch("vocalmerge.console.mix.run_process", side_effect=fake_run):
        assert run_mix(job) == job.output_path


# ── Real ffmpeg ──────────────────────────────────────────


def _probe_duration(path: Path) -> float:
    out = subprocess.run(
        ["ffprobe", "-v", "error", "-show_entries", "format=duration", "-of", "csv=p=0", str(path)],
        capture_output=True,
        text=True,
        check=True,
    )
    return float(out.stdout.strip())


@pytest.mark.skipif(not HAS_FFMPEG, reason="ffmpeg not installed")
def test_real_mix_respects_backing_track_length(tmp_path: Path) -> None:
    import soundfile as sf

    from vocalmerge.api.retrieve import validate_backing_track, validate_recording

    sr = 44100
    t = np.arange(sr * 10) / sr
    voice = tmp_path / "voice.wav"
    sf.write(str(voice), (0.3 * np.sin(2 * np.pi * 220 * t)).astype(np.float32), sr)

    track = tmp_path / "track.mp4"
    subprocess.run(
        [
            "ffmpeg", "-y", "-v", "error",
            "-f", "lavfi", "-i", "testsrc=size=320x240:rate=25:duration=6",
            "-f", "lavfi", "-i", "sine=frequency=440:duration=6",
            "-c:v", "libx264", "-pix_fmt", "yuv420p", "-c:a", "aac", "-shortest",
            str(track),
        ],
        check=True,
    )

    assert validate_recording(voice).has_audio
    inventory = validate_backing_track(track)
    assert inventory.has_video and inventory.has_audio

    job = _job(tmp_path, voice_path=voice, track_path=track, scale=(160, 120))
    output = run_mix(job)

    assert output.exists()
    assert _probe_duration(output) <= _probe_duration(track) + 0.1

    score = score_recording(voice)
    assert score.duration_penalty_applied is True
    assert score.duration_seconds < 60
