"""EAR — performance analysis layer.

- Pitch: framed fundamental-frequency estimation (pluggable estimator)
- Rhythm: framed RMS energy and activity ratio
- Scoring: pitch + rhythm + duration → bounded score and verdict
"""

from vocalmerge.ear.framing import AnalysisConfig, DEFAULT_ANALYSIS
from vocalmerge.ear.pitch import (
    PitchEstimator,
    PitchFrame,
    PyinEstimator,
    YinEstimator,
    extract_pitch,
)
from vocalmerge.ear.rhythm import EnergyFrame, extract_rhythm
from vocalmerge.ear.scoring import (
    DEFAULT_SCORE,
    ScoreResult,
    compose_score,
    score_recording,
    score_waveform,
)

__all__ = [
    "AnalysisConfig",
    "DEFAULT_ANALYSIS",
    "PitchEstimator",
    "PitchFrame",
    "PyinEstimator",
    "YinEstimator",
    "extract_pitch",
    "EnergyFrame",
    "extract_rhythm",
    "DEFAULT_SCORE",
    "ScoreResult",
    "compose_score",
    "score_recording",
    "score_waveform",
]
