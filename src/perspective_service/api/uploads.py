"""Validation and storage of uploaded images."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

from fastapi import HTTPException, UploadFile, status

from perspective_service.supervisor.artifacts import ArtifactRegistry

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = re.compile(r"jpeg|jpg|png|bmp|tiff|tif")
_CHUNK_SIZE = 1024 * 1024


def validate_image_upload(upload: UploadFile) -> str:
    """Return the normalized extension or raise 400 for non-image uploads."""

    suffix = Path(upload.filename or "").suffix.lower()
    content_type = (upload.content_type or "").lower()
    if not ALLOWED_IMAGE_TYPES.search(suffix) or not ALLOWED_IMAGE_TYPES.search(content_type):
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST,
            "Only image files are allowed (JPEG, PNG, BMP, TIFF)",
        )
    return suffix


def store_upload(source: BinaryIO, target: Path, *, max_bytes: int) -> int:
    """Copy ``source`` to ``target``; raise 413 and remove it when too large."""

    written = 0
    try:
        with target.open("wb") as handle:
            while chunk := source.read(_CHUNK_SIZE):
                written += len(chunk)
                if written > max_bytes:
                    raise HTTPException(
                        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                        f"File too large (limit {max_bytes} bytes)",
                    )
                handle.write(chunk)
    except BaseException:
        target.unlink(missing_ok=True)
        raise
    if written == 0:
        target.unlink(missing_ok=True)
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Empty file")
    return written


def stream_and_discard(path: Path, artifacts: ArtifactRegistry) -> Iterator[bytes]:
    """Yield ``path`` in chunks, then delete every artifact of the job."""

    completed = False
    try:
        with path.open("rb") as handle:
            while chunk := handle.read(_CHUNK_SIZE):
                yield chunk
        completed = True
    finally:
        if not completed:
            logger.warning("Transmission interrupted: job_id=%s path=%s", artifacts.job_id, path)
        artifacts.discard_all()
