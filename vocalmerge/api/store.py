"""Output Store — merged files served by identifier, reclaimed after a grace window.

Deletion is a single-shot asyncio task per identifier. Scheduling again
(e.g. a second download) replaces the pending task; deleting early
cancels it.
"""

from __future__ import annotations

import asyncio
import re
import shutil
import uuid
from functools import lru_cache
from pathlib import Path

import structlog

from vocalmerge.api.arena import remove_quietly
from vocalmerge.config import settings

logger = structlog.get_logger()

_UID_RE = re.compile(r"^[0-9a-f]{32}$")
OUTPUT_SUFFIX = ".mp4"


class OutputStore:
    """Persists merged outputs under fresh identifiers."""

    def __init__(self, root: Path, grace_s: float = 300.0) -> None:
        self.root = root
        self.grace_s = grace_s
        self._pending: dict[str, asyncio.Task[None]] = {}

    def _path(self, uid: str) -> Path:
        return self.root / f"{uid}{OUTPUT_SUFFIX}"

    def persist(self, source: Path) -> str:
        """Move ``source`` into the store; returns its new identifier."""
        self.root.mkdir(parents=True, exist_ok=True)
        uid = uuid.uuid4().hex
        shutil.move(str(source), self._path(uid))
        logger.info("store.persisted", uid=uid, path=str(self._path(uid)))
        return uid

    def path_for(self, uid: str) -> Path | None:
        """Stored path for ``uid``, or None if unknown, malformed, or already reclaimed."""
        if not _UID_RE.match(uid):
            return None
        path = self._path(uid)
        return path if path.is_file() else None

    def schedule_deletion(self, uid: str, delay_s: float | None = None) -> asyncio.Task[None]:
        """(Re)schedule deletion of ``uid`` after ``delay_s``. Requires a running loop."""
        self.cancel_deletion(uid)
        delay = self.grace_s if delay_s is None else delay_s
        task = asyncio.get_running_loop().create_task(self._delete_later(uid, delay))
        self._pending[uid] = task
        logger.debug("store.deletion_scheduled", uid=uid, delay_s=delay)
        return task

    async def schedule_after_serve(self, uid: str) -> None:
        """Background hook for the serving endpoint."""
        self.schedule_deletion(uid, self.grace_s)

    def cancel_deletion(self, uid: str) -> bool:
        task = self._pending.pop(uid, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def delete(self, uid: str) -> bool:
        """Delete now, cancelling any pending deletion. Idempotent."""
        self.cancel_deletion(uid)
        if not _UID_RE.match(uid):
            return False
        path = self._path(uid)
        existed = path.exists()
        removed = remove_quietly(path)
        if existed and removed:
            logger.info("store.deleted", uid=uid)
        return existed and removed

    def pending(self) -> list[str]:
        return [uid for uid, task in self._pending.items() if not task.done()]

    async def _delete_later(self, uid: str, delay_s: float) -> None:
        try:
            await asyncio.sleep(delay_s)
        except asyncio.CancelledError:
            return
        if self._pending.get(uid) is asyncio.current_task():
            self._pending.pop(uid, None)
        path = self._path(uid)
        if path.exists() and remove_quietly(path):
            logger.info("store.reclaimed", uid=uid, after_s=delay_s)

    async def shutdown(self) -> None:
        """Cancel all pending deletions (files are left for the next start)."""
        tasks = [t for t in self._pending.values() if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._pending.clear()


@lru_cache
def get_store() -> OutputStore:
    """Process-wide store (FastAPI dependency)."""
    return OutputStore(settings.output_dir, grace_s=settings.serve_grace_s)
