"""Rhythm Extractor — per-frame RMS energy and activity ratio."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from vocalmerge.ear.framing import DEFAULT_ANALYSIS, AnalysisConfig, iter_frames


@dataclass(frozen=True)
class EnergyFrame:
    energy: float


@dataclass
class RhythmAnalysis:
    """Output of ``extract_rhythm``."""

    frames: list[EnergyFrame] = field(default_factory=list)
    activity_ratio: float = 0.0

    @property
    def total_frames(self) -> int:
        return len(self.frames)


def frame_rms(frame: np.ndarray) -> float:
    x = np.asarray(frame, dtype=np.float64)
    if len(x) == 0:
        return 0.0
    return float(np.sqrt(np.mean(x ** 2)))


def activity_ratio(frames: list[EnergyFrame], config: AnalysisConfig = DEFAULT_ANALYSIS) -> float:
    if not frames:
        return 0.0
    active = sum(1 for f in frames if f.energy > config.energy_threshold)
    return active / len(frames)


def extract_rhythm(samples: np.ndarray, config: AnalysisConfig = DEFAULT_ANALYSIS) -> RhythmAnalysis:
    """Frame ``samples`` with the shared window and measure per-frame RMS."""
    frames = [
        EnergyFrame(energy=frame_rms(frame))
        for _, frame in iter_frames(samples, config.frame_size, config.hop_size)
    ]
    return RhythmAnalysis(frames=frames, activity_ratio=activity_ratio(frames, config))
