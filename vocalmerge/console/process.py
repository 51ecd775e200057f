"""Process supervision for external media binaries (ffmpeg, ffprobe).

One call, one process: explicit timeout, captured output, no retry.
Callers decide what a non-zero exit means for them.
"""

from __future__ import annotations

import subprocess
import time
from collections.abc import Sequence
from dataclasses import dataclass

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class ProcessResult:
    """Exit status and captured output of a finished process."""

    argv: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    elapsed_s: float

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def stderr_tail(self, limit: int = 2000) -> str:
        return self.stderr[-limit:]


class ProcessTimeout(Exception):
    """The process exceeded its timeout and was killed."""

    def __init__(self, argv: Sequence[str], timeout_s: float, stderr: str = "") -> None:
        super().__init__(f"{argv[0]} timed out after {timeout_s:.0f}s")
        self.argv = tuple(argv)
        self.timeout_s = timeout_s
        self.stderr = stderr


def run_process(argv: Sequence[str], timeout_s: float) -> ProcessResult:
    """Run ``argv`` to completion and capture stdout/stderr.

    Blocking; dispatch with ``asyncio.to_thread`` from request handlers.

    Raises:
        ProcessTimeout: when ``timeout_s`` elapses (the child is killed).
        FileNotFoundError: when the binary does not exist.
    """
    started = time.monotonic()
    try:
        completed = subprocess.run(  # noqa: S603
            list(argv),
            capture_output=True,
            text=True,
            timeout=timeout_s,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        stderr = e.stderr.decode(errors="replace") if isinstance(e.stderr, bytes) else (e.stderr or "")
        logger.error("process.timeout", binary=argv[0], timeout_s=timeout_s)
        raise ProcessTimeout(argv, timeout_s, stderr) from e

    elapsed = time.monotonic() - started
    logger.debug(
        "process.finished",
        binary=argv[0],
        returncode=completed.returncode,
        elapsed_s=round(elapsed, 2),
    )
    return ProcessResult(
        argv=tuple(argv),
        returncode=completed.returncode,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
        elapsed_s=elapsed,
    )
