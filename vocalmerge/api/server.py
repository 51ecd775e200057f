"""VOCALMERGE FastAPI server — main application."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import structlog

from vocalmerge import __version__
from vocalmerge.api.routes.merge import router as merge_router
from vocalmerge.api.routes.video import router as video_router
from vocalmerge.api.store import get_store
from vocalmerge.config import settings
from vocalmerge.errors import MergeError
from vocalmerge.log import configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level, settings.log_json)
    settings.temp_dir.mkdir(parents=True, exist_ok=True)
    settings.output_dir.mkdir(parents=True, exist_ok=True)
    logger.info(
        "server.startup",
        version=__version__,
        port=settings.port,
        delivery_mode=settings.delivery_mode,
    )
    yield
    await get_store().shutdown()
    logger.info("server.shutdown")


app = FastAPI(
    title="VOCALMERGE",
    description="Vocal take + backing track merge with performance scoring.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

app.include_router(merge_router)
app.include_router(video_router)


@app.exception_handler(MergeError)
async def merge_error_handler(request: Request, exc: MergeError) -> JSONResponse:
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


@app.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok", "timestamp": datetime.now(UTC).isoformat()}
