"""API route for GET /video/{video_id} — serve a stored merge, then reclaim it."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask

import structlog

from vocalmerge.api.store import OutputStore, get_store
from vocalmerge.config import settings
from vocalmerge.console.mix import OUTPUT_MEDIA_TYPE
from vocalmerge.errors import ArtifactNotFound

logger = structlog.get_logger()

router = APIRouter(tags=["video"])


@router.get("/video/{video_id}")
async def get_video(video_id: str, store: OutputStore = Depends(get_store)) -> FileResponse:
    """Stream a merged video. Deletion is scheduled after the response completes."""
    path = store.path_for(video_id)
    if path is None:
        raise ArtifactNotFound("Video not found", details=video_id[:64])

    logger.info("video.serve", uid=video_id, size_bytes=path.stat().st_size)
    return FileResponse(
        path,
        media_type=OUTPUT_MEDIA_TYPE,
        filename=f"{video_id}.mp4",
        content_disposition_type="inline",
        headers={"Cache-Control": f"public, max-age={settings.cache_max_age_s}"},
        background=BackgroundTask(store.schedule_after_serve, video_id),
    )
