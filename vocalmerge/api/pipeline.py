"""Pipeline Orchestrator — one merge request, end to end.

  ingest → check fields → validate recording
         → ( score recording  ‖  download + validate backing track )
         → mix → outcome

Stages are sequential except scoring, which overlaps retrieval. Each
request gets its own pipeline and arena; ``run`` executes at most once.
"""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import structlog

from vocalmerge.api.arena import TempArena
from vocalmerge.api.ingest import IngestedForm
from vocalmerge.api.retrieve import BackingTrack, check_url, retrieve_backing_track, validate_recording
from vocalmerge.config import settings
from vocalmerge.console.mix import MixJob, build_mix_job, run_mix
from vocalmerge.ear.scoring import DEFAULT_SCORE, ScoreResult, score_recording
from vocalmerge.errors import InvalidFormat, MissingInput

logger = structlog.get_logger()

MAX_GAIN = 10.0


@dataclass(frozen=True)
class MergeParams:
    video_url: str
    voice_gain: float
    track_gain: float
    token_id: str | None = None


@dataclass(frozen=True)
class MergeOutcome:
    output_path: Path
    score: ScoreResult
    track: BackingTrack
    job: MixJob
    token_id: str | None
    elapsed_s: float


def _parse_gain(fields: dict[str, str], name: str, default: float) -> float:
    raw = fields.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise InvalidFormat(f"{name} must be numeric", details=raw[:50]) from None
    if not math.isfinite(value) or not 0.0 <= value <= MAX_GAIN:
        raise InvalidFormat(f"{name} must be between 0 and {MAX_GAIN:g}", details=raw[:50])
    return value


def parse_params(fields: dict[str, str]) -> MergeParams:
    """Required URL, optional gains and token. Raises MissingInput / InvalidFormat."""
    video_url = (fields.get("videoUrl") or "").strip()
    if not video_url:
        raise MissingInput("Missing video URL")
    return MergeParams(
        video_url=check_url(video_url),
        voice_gain=_parse_gain(fields, "voiceGain", settings.default_voice_gain),
        track_gain=_parse_gain(fields, "trackGain", settings.default_track_gain),
        token_id=fields.get("tokenId") or None,
    )


class MergePipeline:
    """Runs one merge request inside ``arena``."""

    def __init__(
        self,
        arena: TempArena,
        scorer: Callable[[Path], ScoreResult] | None = None,
        mixer: Callable[[MixJob], Path] | None = None,
    ) -> None:
        self.arena = arena
        self._scorer = scorer or score_recording
        self._mixer = mixer or run_mix
        self._started = False
        self.log = logger.bind(request_id=arena.id)

    async def _score(self, recording_path: Path) -> ScoreResult:
        return await asyncio.to_thread(self._scorer, recording_path)

    async def run(self, form: IngestedForm) -> MergeOutcome:
        """Execute the merge. May be called once per pipeline."""
        if self._started:
            raise RuntimeError(f"Merge pipeline {self.arena.id} already ran")
        self._started = True
        started = time.monotonic()

        if form.recording is None:
            raise MissingInput("No recorded audio uploaded")
        params = parse_params(form.fields)
        recording = form.recording
        self.log.info(
            "merge.params",
            video_url=params.video_url,
            voice_gain=params.voice_gain,
            track_gain=params.track_gain,
        )

        await asyncio.to_thread(validate_recording, recording.path)

        score_result, track_result = await asyncio.gather(
            self._score(recording.path),
            retrieve_backing_track(params.video_url, self.arena),
            return_exceptions=True,
        )
        if isinstance(track_result, BaseException):
            raise track_result
        if isinstance(score_result, BaseException):
            self.log.error("merge.scoring_crashed", error=str(score_result))
            score_result = DEFAULT_SCORE

        job = build_mix_job(
            voice_path=recording.path,
            track_path=track_result.path,
            output_path=self.arena.allocate("merged", ".mp4"),
            voice_gain=params.voice_gain,
            track_gain=params.track_gain,
            include_video=track_result.inventory.has_video,
        )
        output_path = await asyncio.to_thread(self._mixer, job)

        elapsed = time.monotonic() - started
        self.log.info(
            "merge.complete",
            output=str(output_path),
            final_score=score_result.final_score,
            elapsed_s=round(elapsed, 2),
        )
        return MergeOutcome(
            output_path=output_path,
            score=score_result,
            track=track_result,
            job=job,
            token_id=params.token_id,
            elapsed_s=elapsed,
        )
