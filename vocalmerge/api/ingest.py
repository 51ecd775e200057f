"""Multipart ingestion for /merge.

Reads the parsed form exactly once and persists the recording into the
request arena, whether Starlette spooled it to disk or kept it in memory.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from fastapi import Request
from starlette.datastructures import UploadFile
from starlette.formparsers import MultiPartException

import structlog

from vocalmerge.api.arena import TempArena
from vocalmerge.errors import InvalidFormat

logger = structlog.get_logger()

AUDIO_FIELD = "recordedAudio"
DEFAULT_AUDIO_SUFFIX = ".webm"
CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class UploadedRecording:
    """The user's vocal take, persisted inside the request arena."""

    field_name: str
    filename: str
    content_type: str
    path: Path
    size_bytes: int


@dataclass
class IngestedForm:
    """Text fields plus the persisted recording (None if the field was absent)."""

    fields: dict[str, str] = field(default_factory=dict)
    recording: UploadedRecording | None = None
    ignored_files: list[str] = field(default_factory=list)


async def _persist_upload(upload: UploadFile, field_name: str, arena: TempArena) -> UploadedRecording:
    filename = upload.filename or "recording"
    suffix = Path(filename).suffix.lower() or DEFAULT_AUDIO_SUFFIX
    dest = arena.allocate("audio", suffix)

    size = 0
    with dest.open("wb") as fh:
        while chunk := await upload.read(CHUNK_SIZE):
            fh.write(chunk)
            size += len(chunk)

    logger.info(
        "merge.upload.saved",
        field=field_name,
        filename=filename,
        content_type=upload.content_type,
        path=str(dest),
        size_bytes=size,
    )
    return UploadedRecording(
        field_name=field_name,
        filename=filename,
        content_type=upload.content_type or "application/octet-stream",
        path=dest,
        size_bytes=size,
    )


async def ingest_merge_form(request: Request, arena: TempArena, audio_field: str = AUDIO_FIELD) -> IngestedForm:
    """Parse the multipart body once; persist ``audio_field`` into ``arena``.

    Extra file fields are drained and ignored. A second file under
    ``audio_field`` is ignored too (exactly one recording per request).

    Raises:
        InvalidFormat: the multipart body could not be parsed.
    """
    try:
        form = await request.form()
    except (MultiPartException, ValueError) as e:
        raise InvalidFormat("Error parsing multipart data", details=str(e)) from e

    ingested = IngestedForm()
    try:
        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                if key == audio_field and ingested.recording is None:
                    ingested.recording = await _persist_upload(value, key, arena)
                else:
                    logger.warning("merge.upload.unexpected_file", field=key, filename=value.filename)
                    ingested.ignored_files.append(key)
            else:
                ingested.fields[key] = value
    finally:
        await form.close()

    logger.info(
        "merge.form.parsed",
        fields=sorted(ingested.fields),
        has_recording=ingested.recording is not None,
    )
    return ingested
