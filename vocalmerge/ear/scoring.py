"""Score Composer — turns pitch and rhythm features into a performance score.

Composition:
  pitch_score  = bell(accuracy × diversity_weight), collapsed to 0 near silence
  rhythm_score = bell(activity) flattened by ^0.8, capped at 98
  final        = 0.4·pitch + 0.6·rhythm, ×0.8 if under 60s, rounded, capped at 95
  verdict      = bracket lookup on final

Any decode or extraction failure degrades to ``DEFAULT_SCORE`` in
``score_recording``; it never propagates to the request.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import numpy as np

import structlog

from vocalmerge.ear.framing import DEFAULT_ANALYSIS, AnalysisConfig, frames_to_seconds, load_mono
from vocalmerge.ear.pitch import PitchAnalysis, PitchEstimator, extract_pitch
from vocalmerge.ear.rhythm import RhythmAnalysis, extract_rhythm
from vocalmerge.errors import ScoringFailed

logger = structlog.get_logger()


# ── Constants ────────────────────────────────────────────

BELL_SKEW = 1.3
RHYTHM_FLATTEN = 0.8
RHYTHM_CEILING = 98.0  # 99-100 reserved for "exceptional"
PITCH_WEIGHT = 0.4
RHYTHM_WEIGHT = 0.6
DIVERSITY_TARGET = 0.3  # 300 Hz of spread counts as full melodic range
SILENCE_FLOOR = 0.01
MIN_DURATION_S = 60.0
DURATION_PENALTY = 0.8
FINAL_CEILING = 95.0

# Lower bound (inclusive) → label, highest first. Covers [0, 100].
VERDICT_BRACKETS: tuple[tuple[float, str], ...] = (
    (100.0, "Mic God 👑"),
    (95.0, "Crypto Legend 💎"),
    (90.0, "Moonbound 🚀"),
    (85.0, "Frog King 🐸"),
    (80.0, "Unstoppable 💥"),
    (75.0, "The Belter™️ 🔥"),
    (70.0, "Mildly Rekt 😅"),
    (65.0, "On The Rise 📈"),
    (60.0, "Getting There 👍"),
    (55.0, "Room for Growth 🌱"),
    (50.0, "Keep Practicing 💪"),
    (45.0, "Not Bad 🛑"),
    (40.0, "Almost Rugged 😬"),
    (35.0, "Close But No 🍄"),
    (30.0, "Cat Blender 🐱💥"),
    (20.0, "WTF Was That? 🤨"),
    (10.0, "Rugged Again 🏚️"),
    (0.0, "Dead Inside 💀"),
)

ANALYSIS_FAILED_VERDICT = "Analysis Error 🔧"


# ── Types ────────────────────────────────────────────────


@dataclass(frozen=True)
class ScoreResult:
    """Performance score for one recording. Never mutated after composition."""

    pitch_score: float
    rhythm_score: float
    final_score: float
    verdict: str
    pitch_accuracy: float
    pitch_diversity: float
    activity_ratio: float
    duration_seconds: float
    duration_penalty_applied: bool

    @property
    def clarity(self) -> int:
        return round(self.pitch_accuracy * 100)

    @property
    def midi_range(self) -> int:
        return round(self.pitch_diversity * 100)

    def to_dict(self) -> dict[str, Any]:
        """camelCase dict for the JSON envelope."""
        raw = asdict(self)
        return {
            "pitchScore": raw["pitch_score"],
            "rhythmScore": raw["rhythm_score"],
            "finalScore": raw["final_score"],
            "verdict": raw["verdict"],
            "clarity": self.clarity,
            "midiRange": self.midi_range,
            "pitchAccuracy": raw["pitch_accuracy"],
            "pitchDiversity": raw["pitch_diversity"],
            "activityRatio": raw["activity_ratio"],
            "durationSeconds": raw["duration_seconds"],
            "durationPenalty": raw["duration_penalty_applied"],
        }


DEFAULT_SCORE = ScoreResult(
    pitch_score=25.0,
    rhythm_score=25.0,
    final_score=25.0,
    verdict=ANALYSIS_FAILED_VERDICT,
    pitch_accuracy=0.0,
    pitch_diversity=0.0,
    activity_ratio=0.0,
    duration_seconds=0.0,
    duration_penalty_applied=False,
)


# ── Shaping ──────────────────────────────────────────────


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def bell_curve(ratio: float, skew: float = BELL_SKEW) -> float:
    """Power-law shaping of a [0, 1] ratio onto 0-100."""
    return _clamp(ratio, 0.0, 1.0) ** skew * 100.0


def shape_pitch(accuracy: float, diversity: float) -> float:
    diversity_weight = _clamp(diversity / DIVERSITY_TARGET, 0.0, 1.0)
    combined = accuracy * diversity_weight
    if combined < SILENCE_FLOOR:
        return 0.0
    return bell_curve(combined)


def shape_rhythm(activity: float) -> float:
    raw = bell_curve(activity)
    return min((raw / 100.0) ** RHYTHM_FLATTEN * 100.0, RHYTHM_CEILING)


def verdict_for(score: float) -> str:
    """Bracket lookup; total over [0, 100]."""
    score = _clamp(score, 0.0, 100.0)
    for lower, label in VERDICT_BRACKETS:
        if score >= lower:
            return label
    return VERDICT_BRACKETS[-1][1]


# ── Composition ──────────────────────────────────────────


def compose_score(
    pitch: PitchAnalysis,
    rhythm: RhythmAnalysis,
    config: AnalysisConfig = DEFAULT_ANALYSIS,
) -> ScoreResult:
    """Blend extractor outputs into a ScoreResult."""
    total_frames = pitch.total_frames
    if total_frames == 0:
        raise ScoringFailed("No complete analysis frames")

    accuracy = _clamp(pitch.accuracy, 0.0, 1.0)
    diversity = _clamp(pitch.diversity, 0.0, 1.0)
    activity = _clamp(rhythm.activity_ratio, 0.0, 1.0)

    pitch_score = shape_pitch(accuracy, diversity)
    rhythm_score = shape_rhythm(activity)
    base = PITCH_WEIGHT * pitch_score + RHYTHM_WEIGHT * rhythm_score

    duration_s = frames_to_seconds(total_frames, config)
    penalized = duration_s < MIN_DURATION_S
    multiplier = DURATION_PENALTY if penalized else 1.0

    final_score = min(round(base * multiplier, 1), FINAL_CEILING)
    final_score = _clamp(final_score, 0.0, 100.0)

    return ScoreResult(
        pitch_score=round(pitch_score, 1),
        rhythm_score=round(rhythm_score, 1),
        final_score=final_score,
        verdict=verdict_for(final_score),
        pitch_accuracy=accuracy,
        pitch_diversity=diversity,
        activity_ratio=activity,
        duration_seconds=round(duration_s, 1),
        duration_penalty_applied=penalized,
    )


def score_waveform(
    samples: np.ndarray,
    estimator: PitchEstimator | None = None,
    config: AnalysisConfig = DEFAULT_ANALYSIS,
) -> ScoreResult:
    """Score an already-decoded mono waveform. Raises ScoringFailed."""
    samples = np.asarray(samples, dtype=np.float32)
    if samples.ndim != 1:
        raise ScoringFailed(f"Expected mono waveform, got shape {samples.shape}")
    if len(samples) < config.frame_size:
        raise ScoringFailed(f"Waveform shorter than one frame ({len(samples)} samples)")
    if not np.all(np.isfinite(samples)):
        raise ScoringFailed("Waveform contains NaN or Inf")

    pitch = extract_pitch(samples, estimator=estimator, config=config)
    rhythm = extract_rhythm(samples, config=config)
    return compose_score(pitch, rhythm, config)


def score_recording(
    audio_path: str | Path,
    estimator: PitchEstimator | None = None,
    config: AnalysisConfig = DEFAULT_ANALYSIS,
) -> ScoreResult:
    """Decode and score a recording; returns ``DEFAULT_SCORE`` on any failure."""
    logger.info("scoring.start", audio=str(audio_path))
    try:
        samples = load_mono(audio_path, config.sample_rate)
        result = score_waveform(samples, estimator=estimator, config=config)
    except ScoringFailed as e:
        logger.warning("scoring.failed", audio=str(audio_path), error=str(e))
        return DEFAULT_SCORE
    except Exception as e:
        logger.error("scoring.decode_failed", audio=str(audio_path), error=str(e))
        return DEFAULT_SCORE

    logger.info(
        "scoring.complete",
        final_score=result.final_score,
        verdict=result.verdict,
        duration_s=result.duration_seconds,
        penalty=result.duration_penalty_applied,
    )
    return result
