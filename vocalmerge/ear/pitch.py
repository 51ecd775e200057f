"""Pitch Extractor — per-frame fundamental frequency over a mono waveform.

The estimator is pluggable (``PitchEstimator``): the extractor only frames
the signal and classifies each estimate as valid or not. ``YinEstimator``
is the default; ``PyinEstimator`` wraps librosa's probabilistic YIN.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

import numpy as np
from scipy import signal

import structlog

from vocalmerge.ear.framing import DEFAULT_ANALYSIS, AnalysisConfig, iter_frames

logger = structlog.get_logger()


# ── Types ────────────────────────────────────────────────


@dataclass(frozen=True)
class PitchFrame:
    """One analysis frame: start time in seconds and pitch in Hz (None = unvoiced)."""

    time: float
    pitch: float | None


@dataclass
class PitchAnalysis:
    """Output of ``extract_pitch``."""

    frames: list[PitchFrame] = field(default_factory=list)
    accuracy: float = 0.0
    diversity: float = 0.0

    @property
    def total_frames(self) -> int:
        return len(self.frames)


class PitchEstimator(Protocol):
    """Estimate the fundamental frequency of one frame, or None if unvoiced."""

    def estimate(self, frame: np.ndarray, sample_rate: int) -> float | None: ...


# ── Estimators ───────────────────────────────────────────


@dataclass(frozen=True)
class YinEstimator:
    """YIN (de Cheveigné & Kawahara, 2002) on a single frame.

    The first half of the frame is the reference window; lags run over the
    second half. Returns None when no lag dips below ``threshold`` in the
    cumulative-mean-normalized difference function.
    """

    threshold: float = 0.10

    def estimate(self, frame: np.ndarray, sample_rate: int) -> float | None:
        x = np.asarray(frame, dtype=np.float64)
        half = len(x) // 2
        if half < 3 or not np.any(x):
            return None

        diff = _difference(x, half)
        cmnd = _cumulative_mean_normalized(diff)

        tau = _absolute_threshold(cmnd, self.threshold)
        if tau is None:
            return None

        period = _parabolic_interpolation(cmnd, tau)
        if period <= 0:
            return None
        return float(sample_rate / period)


@dataclass(frozen=True)
class PyinEstimator:
    """librosa.pyin on a single frame (slower, probabilistic voicing)."""

    fmin: float = 65.0
    fmax: float = 1500.0

    def estimate(self, frame: np.ndarray, sample_rate: int) -> float | None:
        import librosa

        f0, voiced, _ = librosa.pyin(
            np.asarray(frame, dtype=np.float64),
            fmin=self.fmin,
            fmax=self.fmax,
            sr=sample_rate,
            frame_length=len(frame),
            center=False,
        )
        if len(f0) == 0 or not bool(voiced[0]) or np.isnan(f0[0]):
            return None
        return float(f0[0])


def _difference(x: np.ndarray, half: int) -> np.ndarray:
    """YIN difference function d(tau) for tau in [0, half)."""
    ref = x[:half]
    energy = np.concatenate(([0.0], np.cumsum(x ** 2)))
    ref_energy = energy[half]
    lag_energy = energy[half:2 * half] - energy[:half]
    corr = signal.correlate(x, ref, mode="valid", method="fft")[:half]
    diff = ref_energy + lag_energy - 2.0 * corr
    diff[0] = 0.0
    return np.maximum(diff, 0.0)


def _cumulative_mean_normalized(diff: np.ndarray) -> np.ndarray:
    cmnd = np.ones_like(diff)
    running = np.cumsum(diff[1:])
    taus = np.arange(1, len(diff))
    with np.errstate(divide="ignore", invalid="ignore"):
        cmnd[1:] = np.where(running > 0, diff[1:] * taus / running, 1.0)
    return cmnd


def _absolute_threshold(cmnd: np.ndarray, threshold: float) -> int | None:
    below = np.nonzero(cmnd[2:] < threshold)[0]
    if len(below) == 0:
        return None
    tau = int(below[0]) + 2
    # Walk down to the bottom of the dip
    while tau + 1 < len(cmnd) and cmnd[tau + 1] < cmnd[tau]:
        tau += 1
    return tau


def _parabolic_interpolation(cmnd: np.ndarray, tau: int) -> float:
    if tau <= 0 or tau >= len(cmnd) - 1:
        return float(tau)
    s0, s1, s2 = cmnd[tau - 1], cmnd[tau], cmnd[tau + 1]
    denom = 2.0 * (2.0 * s1 - s2 - s0)
    if denom == 0:
        return float(tau)
    return tau + (s2 - s0) / denom


# ── Extraction ───────────────────────────────────────────


def is_valid_pitch(pitch: float | None, config: AnalysisConfig = DEFAULT_ANALYSIS) -> bool:
    """True when the estimate lies strictly inside the plausible vocal range."""
    return pitch is not None and config.min_pitch_hz < pitch < config.max_pitch_hz


def pitch_accuracy(frames: list[PitchFrame], config: AnalysisConfig = DEFAULT_ANALYSIS) -> float:
    if not frames:
        return 0.0
    valid = sum(1 for f in frames if is_valid_pitch(f.pitch, config))
    return valid / len(frames)


def pitch_diversity(frames: list[PitchFrame], config: AnalysisConfig = DEFAULT_ANALYSIS) -> float:
    """Spread of valid pitches against the reference range, clamped to [0, 1]."""
    valid = [f.pitch for f in frames if is_valid_pitch(f.pitch, config)]
    if not valid:
        return 0.0
    spread = max(valid) - min(valid)
    return float(min(1.0, max(0.0, spread / config.diversity_reference_hz)))


def extract_pitch(
    samples: np.ndarray,
    estimator: PitchEstimator | None = None,
    config: AnalysisConfig = DEFAULT_ANALYSIS,
) -> PitchAnalysis:
    """Frame ``samples`` and estimate pitch per frame.

    Args:
        samples: Mono waveform at ``config.sample_rate``, normalized to -1..1.
        estimator: Pitch estimator; defaults to ``YinEstimator()``.
        config: Framing and validity constants.
    """
    estimator = estimator or YinEstimator()
    frames: list[PitchFrame] = []
    for start, frame in iter_frames(samples, config.frame_size, config.hop_size):
        pitch = estimator.estimate(frame, config.sample_rate)
        frames.append(PitchFrame(time=round(start / config.sample_rate, 3), pitch=pitch))

    analysis = PitchAnalysis(
        frames=frames,
        accuracy=pitch_accuracy(frames, config),
        diversity=pitch_diversity(frames, config),
    )
    logger.debug(
        "pitch.extracted",
        frames=analysis.total_frames,
        accuracy=round(analysis.accuracy, 3),
        diversity=round(analysis.diversity, 3),
    )
    return analysis
