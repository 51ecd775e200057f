"""API route for POST /merge."""

from __future__ import annotations

import asyncio
import json
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

import structlog

from vocalmerge.api.arena import TempArena
from vocalmerge.api.ingest import ingest_merge_form
from vocalmerge.api.pipeline import MergeOutcome, MergePipeline
from vocalmerge.api.store import OutputStore, get_store
from vocalmerge.config import settings
from vocalmerge.console.mix import OUTPUT_MEDIA_TYPE
from vocalmerge.errors import MergeError

logger = structlog.get_logger()

router = APIRouter(tags=["merge"])


def _referenced_response(outcome: MergeOutcome, store: OutputStore) -> dict[str, Any]:
    uid = store.persist(outcome.output_path)
    store.schedule_deletion(uid, settings.orphan_ttl_s)
    return {
        "success": True,
        "videoUid": uid,
        "videoUrl": f"{settings.public_base_url.rstrip('/')}/video/{uid}",
        "scoreResult": outcome.score.to_dict(),
        "tokenId": outcome.token_id,
    }


async def _inline_response(outcome: MergeOutcome) -> Response:
    data = await asyncio.to_thread(outcome.output_path.read_bytes)
    return Response(
        content=data,
        media_type=OUTPUT_MEDIA_TYPE,
        headers={"X-Score-Result": json.dumps(outcome.score.to_dict(), ensure_ascii=True)},
    )


@router.post("/merge", response_model=None)
async def merge(request: Request, store: OutputStore = Depends(get_store)) -> dict[str, Any] | Response:
    """Merge an uploaded vocal take onto a remote backing track and score it.

    Multipart fields: recordedAudio (file), videoUrl, voiceGain, trackGain, tokenId.
    """
    arena = TempArena()
    log = logger.bind(request_id=arena.id)
    log.info("merge.received", content_type=request.headers.get("content-type"))

    try:
        form = await ingest_merge_form(request, arena)
        outcome = await MergePipeline(arena).run(form)

        if settings.delivery_mode == "inline":
            return await _inline_response(outcome)
        return _referenced_response(outcome, store)

    except MergeError as e:
        log.warning("merge.rejected", error=e.message, status=e.status_code)
        raise
    except Exception as e:
        log.exception("merge.internal_error")
        raise MergeError("Internal server error", details=str(e)) from e
    finally:
        arena.cleanup()
