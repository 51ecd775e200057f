"""Pitch and rhythm extractor tests."""

from __future__ import annotations

import numpy as np
import pytest

from vocalmerge.ear.framing import DEFAULT_ANALYSIS, AnalysisConfig, frame_count, frames_to_seconds, iter_frames
from vocalmerge.ear.pitch import (
    PitchFrame,
    YinEstimator,
    extract_pitch,
    is_valid_pitch,
    pitch_accuracy,
    pitch_diversity,
)
from vocalmerge.ear.rhythm import EnergyFrame, activity_ratio, extract_rhythm, frame_rms

SR = DEFAULT_ANALYSIS.sample_rate


def _tone(freq: float, n_samples: int, amp: float = 0.5) -> np.ndarray:
    t = np.arange(n_samples) / SR
    return (amp * np.sin(2 * np.pi * freq * t)).astype(np.float32)


# ── Framing ──────────────────────────────────────────────


@pytest.mark.parametrize(
    ("n_samples", "expected"),
    [(0, 0), (2047, 0), (2048, 1), (3071, 1), (3072, 2), (10 * 1024 + 1024, 10)],
)
def test_frame_count_drops_partial_window(n_samples: int, expected: int) -> None:
    assert frame_count(n_samples, 2048, 1024) == expected


def test_iter_frames_hop_is_half_window() -> None:
    samples = np.arange(5000, dtype=np.float32)
    starts = [start for start, frame in iter_frames(samples, 2048, 1024)]
    assert starts == [0, 1024, 2048]
    assert all(len(frame) == 2048 for _, frame in iter_frames(samples, 2048, 1024))


def test_frames_to_seconds() -> None:
    config = AnalysisConfig()
    assert frames_to_seconds(0, config) == 0.0
    assert frames_to_seconds(2584, config) == pytest.approx(60.0, abs=0.05)


# ── YIN ──────────────────────────────────────────────────


@pytest.mark.parametrize("freq", [110.0, 220.0, 440.0, 880.0])
def test_yin_recovers_sine_frequency(freq: float) -> None:
    frame = _tone(freq, 2048)
    estimate = YinEstimator().estimate(frame, SR)
    assert estimate is not None
    assert estimate == pytest.approx(freq, rel=0.01)


def test_yin_silence_is_unvoiced() -> None:
    assert YinEstimator().estimate(np.zeros(2048, dtype=np.float32), SR) is None


def test_yin_white_noise_is_mostly_unvoiced() -> None:
    rng = np.random.default_rng(7)
    estimator = YinEstimator()
    voiced = sum(
        estimator.estimate(rng.standard_normal(2048).astype(np.float32), SR) is not None
        for _ in range(20)
    )
    assert voiced <= 5


# ── Pitch extraction ─────────────────────────────────────


def test_valid_pitch_bounds_are_exclusive() -> None:
    assert not is_valid_pitch(None)
    assert not is_valid_pitch(50.0)
    assert is_valid_pitch(50.1)
    assert is_valid_pitch(1499.9)
    assert not is_valid_pitch(1500.0)


def test_pitch_ratios() -> None:
    frames = [
        PitchFrame(0.0, 200.0),
        PitchFrame(0.1, None),
        PitchFrame(0.2, 700.0),
        PitchFrame(0.3, 4000.0),
    ]
    assert pitch_accuracy(frames) == 0.5
    assert pitch_diversity(frames) == pytest.approx(0.5)
    assert pitch_diversity([PitchFrame(0.0, None)]) == 0.0
    assert pitch_accuracy([]) == 0.0


def test_diversity_is_clamped() -> None:
    frames = [PitchFrame(0.0, 60.0), PitchFrame(0.1, 1400.0)]
    assert pitch_diversity(frames) == 1.0


def test_extract_pitch_times_are_ordered() -> None:
    analysis = extract_pitch(_tone(300.0, SR))
    times = [f.time for f in analysis.frames]
    assert times == sorted(times)
    assert analysis.total_frames == frame_count(SR, 2048, 1024)
    assert analysis.accuracy > 0.9


def test_extract_pitch_uses_supplied_estimator() -> None:
    class Fixed:
        def estimate(self, frame: np.ndarray, sample_rate: int) -> float | None:
            return 123.0

    analysis = extract_pitch(np.zeros(4096, dtype=np.float32), estimator=Fixed())
    assert {f.pitch for f in analysis.frames} == {123.0}
    assert analysis.accuracy == 1.0
    assert analysis.diversity == 0.0


# ── Rhythm ───────────────────────────────────────────────


def test_frame_rms() -> None:
    assert frame_rms(np.zeros(1024)) == 0.0
    assert frame_rms(np.ones(1024) * 0.5) == pytest.approx(0.5)
    assert frame_rms(_tone(440.0, 44100, amp=1.0)) == pytest.approx(1 / np.sqrt(2), rel=0.01)


def test_activity_ratio_counts_frames_above_threshold() -> None:
    frames = [EnergyFrame(0.0), EnergyFrame(1e-6), EnergyFrame(2e-5), EnergyFrame(0.3)]
    assert activity_ratio(frames) == 0.5
    assert activity_ratio([]) == 0.0


def test_extract_rhythm_half_silent() -> None:
    samples = np.concatenate([np.zeros(SR, dtype=np.float32), _tone(220.0, SR)])
    analysis = extract_rhythm(samples)
    assert analysis.total_frames == frame_count(len(samples), 2048, 1024)
    assert 0.4 < analysis.activity_ratio < 0.6


def test_pyin_estimator_is_pluggable() -> None:
    from vocalmerge.ear.pitch import PyinEstimator

    estimate = PyinEstimator().estimate(_tone(220.0, 2048), SR)
    assert estimate is not None
    assert estimate == pytest.approx(220.0, rel=0.02)
