"""Per-request temporary arena.

Every intermediate file of one request lives under its own uuid-keyed
directory, so concurrent requests never collide and cleanup is one call.
"""

from __future__ import annotations

import shutil
import uuid
from pathlib import Path

import structlog

from vocalmerge.config import settings

logger = structlog.get_logger()


def remove_quietly(path: Path) -> bool:
    """Delete-if-exists. Failures are logged, never raised."""
    try:
        path.unlink(missing_ok=True)
        return True
    except OSError as e:
        logger.warning("cleanup.failed", path=str(path), error=str(e))
        return False


class TempArena:
    """Allocates unique temp paths for one request and removes them together."""

    def __init__(self, root: Path | None = None) -> None:
        self.id = uuid.uuid4().hex
        self.root = (root or settings.temp_dir) / f"req-{self.id}"
        self._paths: list[Path] = []
        self._closed = False

    def allocate(self, stem: str, suffix: str = "") -> Path:
        """Reserve a fresh path inside the arena (the file is not created)."""
        if self._closed:
            raise RuntimeError(f"Arena {self.id} already cleaned up")
        self.root.mkdir(parents=True, exist_ok=True)
        path = self.root / f"{stem}-{uuid.uuid4().hex[:12]}{suffix}"
        self._paths.append(path)
        return path

    def release(self, path: Path) -> None:
        """Hand ``path`` over to another owner; cleanup will skip it."""
        if path in self._paths:
            self._paths.remove(path)

    @property
    def paths(self) -> list[Path]:
        return list(self._paths)

    def cleanup(self) -> None:
        """Remove every allocated file and the arena directory. Idempotent."""
        for path in self._paths:
            remove_quietly(path)
        self._paths.clear()
        if self.root.exists():
            try:
                shutil.rmtree(self.root)
            except OSError as e:
                logger.warning("cleanup.arena_failed", arena=self.id, error=str(e))
        self._closed = True

    def __enter__(self) -> TempArena:
        return self

    def __exit__(self, *exc: object) -> None:
        self.cleanup()
