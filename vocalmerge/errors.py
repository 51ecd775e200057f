"""Error taxonomy for the merge pipeline.

Every request-level failure is a ``MergeError`` carrying the HTTP status
it maps to. The API layer converts them to ``{"error", "details"}`` JSON
in a single exception handler.
"""

from __future__ import annotations


class MergeError(Exception):
    """Base class for failures that end a merge request."""

    status_code: int = 500

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, str]:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class MissingInput(MergeError):
    """A required form field was not supplied."""

    status_code = 400


class InvalidFormat(MergeError):
    """Input exists but is unusable (no audio stream, bad gain, unreadable media)."""

    status_code = 400


class DownloadFailed(MergeError):
    """The backing track could not be fetched."""

    status_code = 500


class TranscodeFailed(MergeError):
    """ffmpeg exited non-zero or timed out."""

    status_code = 500


class OutputMissing(MergeError):
    """ffmpeg reported success but the declared output file is absent."""

    status_code = 500


class ScoringFailed(Exception):
    """Raised inside the scoring engine only; never reaches a caller of score_recording."""


class ArtifactNotFound(MergeError):
    """No stored output exists for the requested identifier."""

    status_code = 404
