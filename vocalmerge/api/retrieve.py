"""Asset retrieval & validation — backing-track download and stream checks.

Downloads are single-shot: source URLs are short-lived, so a failed fetch
is surfaced immediately rather than retried.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

import httpx
import structlog

from vocalmerge.api.arena import TempArena
from vocalmerge.config import settings
from vocalmerge.console.probe import StreamInventory, probe_streams
from vocalmerge.errors import DownloadFailed, InvalidFormat

logger = structlog.get_logger()


@dataclass(frozen=True)
class BackingTrack:
    source_url: str
    path: Path
    inventory: StreamInventory
    size_bytes: int


def check_url(url: str) -> str:
    """Reject anything that is not an absolute http(s) URL."""
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidFormat("videoUrl must be an absolute http(s) URL", details=url[:200])
    return url.strip()


def download_backing_track(
    url: str,
    dest: Path,
    timeout_s: float | None = None,
    transport: httpx.BaseTransport | None = None,
) -> int:
    """GET ``url`` and write the body verbatim to ``dest``. Returns bytes written.

    Raises:
        DownloadFailed: transport error, non-2xx status, or write failure.
    """
    logger.info("merge.download.start", url=url, dest=str(dest))
    size = 0
    try:
        with httpx.Client(
            timeout=timeout_s or settings.download_timeout_s,
            follow_redirects=True,
            transport=transport,
        ) as client, client.stream("GET", url) as resp:
            logger.info(
                "merge.download.response",
                status=resp.status_code,
                content_type=resp.headers.get("content-type"),
                content_length=resp.headers.get("content-length"),
            )
            if not resp.is_success:
                raise DownloadFailed(
                    "Failed to download video URL",
                    details=f"HTTP {resp.status_code} {resp.reason_phrase}",
                )
            with dest.open("wb") as fh:
                for chunk in resp.iter_bytes():
                    fh.write(chunk)
                    size += len(chunk)
    except httpx.HTTPError as e:
        logger.error("merge.download.failed", url=url, error=str(e))
        raise DownloadFailed("Failed to download video URL", details=str(e)) from e
    except OSError as e:
        logger.error("merge.download.save_failed", dest=str(dest), error=str(e))
        raise DownloadFailed("Failed to save backing track", details=str(e)) from e

    logger.info("merge.download.saved", dest=str(dest), size_bytes=size)
    return size


def validate_recording(path: Path) -> StreamInventory:
    """The recording must carry an audio stream."""
    inventory = probe_streams(path)
    if not inventory.has_audio:
        raise InvalidFormat("Recorded audio has no audio stream", details=inventory.describe())
    return inventory


def validate_backing_track(path: Path) -> StreamInventory:
    """Missing video or audio is only a warning; the mix stage decides."""
    inventory = probe_streams(path)
    if not inventory.has_video:
        logger.warning("merge.track.no_video", path=str(path), streams=inventory.describe())
    if not inventory.has_audio:
        logger.warning("merge.track.no_audio", path=str(path), streams=inventory.describe())
    return inventory


async def retrieve_backing_track(
    url: str,
    arena: TempArena,
    transport: httpx.BaseTransport | None = None,
) -> BackingTrack:
    """Download and probe the backing track into ``arena``."""
    dest = arena.allocate("backing", ".mp4")
    size = await asyncio.to_thread(download_backing_track, url, dest, None, transport)
    inventory = await asyncio.to_thread(validate_backing_track, dest)
    return BackingTrack(source_url=url, path=dest, inventory=inventory, size_bytes=size)
