"""Shared framing for the pitch and rhythm extractors.

Both extractors walk the same mono waveform with the same window so their
frame counts line up and duration can be derived from either.

Analysis constants (fixed system-wide):
  - 44.1 kHz mono decode
  - 2048-sample window, 1024-sample hop (50% overlap)
  - valid vocal pitch strictly between 50 Hz and 1500 Hz
  - RMS energy, active above 1e-5 (normalized -1..1 samples)
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

import numpy as np


@dataclass(frozen=True)
class AnalysisConfig:
    """Process-wide scoring constants."""

    sample_rate: int = 44100
    frame_size: int = 2048
    hop_size: int = 1024
    min_pitch_hz: float = 50.0
    max_pitch_hz: float = 1500.0
    diversity_reference_hz: float = 1000.0
    energy_threshold: float = 1e-5


DEFAULT_ANALYSIS = AnalysisConfig()


def frame_count(n_samples: int, frame_size: int, hop_size: int) -> int:
    """Number of full frames; the trailing partial window is dropped."""
    if n_samples < frame_size:
        return 0
    return 1 + (n_samples - frame_size) // hop_size


def iter_frames(
    samples: np.ndarray,
    frame_size: int,
    hop_size: int,
) -> Iterator[tuple[int, np.ndarray]]:
    """Yield ``(start_sample, frame)`` for every full window."""
    for k in range(frame_count(len(samples), frame_size, hop_size)):
        start = k * hop_size
        yield start, samples[start:start + frame_size]


def frames_to_seconds(n_frames: int, config: AnalysisConfig = DEFAULT_ANALYSIS) -> float:
    """Recording duration implied by an analyzed frame count."""
    return n_frames * config.hop_size / config.sample_rate


def load_mono(audio_path: str | Path, sample_rate: int = DEFAULT_ANALYSIS.sample_rate) -> np.ndarray:
    """Decode any audio file to a float32 mono waveform at ``sample_rate``."""
    import librosa

    y, _ = librosa.load(str(audio_path), sr=sample_rate, mono=True)
    return np.asarray(y, dtype=np.float32)
