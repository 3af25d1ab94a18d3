"""
Stage multipart uploads as local temporary files.

Each upload field (``coverImage``, ``file``) becomes at most one
``TempFileHandle``. Staged files live in the upload directory under a random
hex name and belong to the request that staged them; the coordinator discards
them before the request completes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence
from uuid import uuid4

from fastapi import UploadFile

from .configuration import MAX_UPLOAD_BYTES
from .errors import CleanupWarning, ValidationError
from .utils import ensure_directory

logger = logging.getLogger(__name__)

COVER_FIELD = "coverImage"
DOCUMENT_FIELD = "file"

CHUNK_SIZE = 8 * 1024 * 1024


@dataclass(frozen=True)
class TempFileHandle:
    path: Path
    mime_type: str
    size_bytes: int

    @property
    def filename(self) -> str:
        return self.path.name


@dataclass
class StagedBookFiles:
    cover: Optional[TempFileHandle] = None
    document: Optional[TempFileHandle] = None

    def require(self) -> tuple[TempFileHandle, TempFileHandle]:
        """Return both handles, or raise for the first missing field."""
        if self.cover is None:
            raise ValidationError(f"{COVER_FIELD} is required")
        if self.document is None:
            raise ValidationError(f"{DOCUMENT_FIELD} is required")
        return self.cover, self.document

    def handles(self) -> List[TempFileHandle]:
        return [handle for handle in (self.cover, self.document) if handle is not None]

    def discard(self) -> None:
        for handle in self.handles():
            discard(handle)


def discard(handle: TempFileHandle) -> bool:
    """
    Delete a staged file. Never raises.

    Returns:
        True if the file is gone afterwards
    """
    try:
        handle.path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning(
            f"{CleanupWarning.__name__}: could not delete staged file {handle.path}: {exc}"
        )
        return False
    return True


def _describe_limit(max_bytes: int) -> str:
    if max_bytes % 1_000_000 == 0:
        return f"{max_bytes // 1_000_000} MB"
    return f"{max_bytes} byte"


def _is_empty_part(upload: UploadFile) -> bool:
    return not upload.filename and not upload.size


class StagingArea:
    """
    Writes uploads into ``root`` and enforces per-field rules.

    Args:
        root: Upload directory, created on demand
        max_bytes: Largest accepted file size
    """

    def __init__(self, root: Path, max_bytes: int = MAX_UPLOAD_BYTES):
        self.root = Path(root)
        self.max_bytes = max_bytes

    async def stage(
        self,
        field: str,
        uploads: Optional[Sequence[UploadFile]],
        require_image: bool = False,
    ) -> Optional[TempFileHandle]:
        parts = [upload for upload in uploads or [] if not _is_empty_part(upload)]
        if not parts:
            return None
        if len(parts) > 1:
            raise ValidationError(f"{field} accepts a single file")

        upload = parts[0]
        mime_type = upload.content_type or "application/octet-stream"
        if require_image and not mime_type.startswith("image/"):
            raise ValidationError(f"{field} must be an image")

        destination = ensure_directory(self.root) / uuid4().hex
        size = 0
        try:
            with destination.open("wb") as buffer:
                while chunk := await upload.read(CHUNK_SIZE):
                    size += len(chunk)
                    if size > self.max_bytes:
                        raise ValidationError(f"{field} exceeds the {_describe_limit(self.max_bytes)} limit")
                    buffer.write(chunk)
        except BaseException:
            destination.unlink(missing_ok=True)
            raise
        finally:
            await upload.close()

        logger.info(f"Staged {field} as {destination} ({size} bytes)")
        return TempFileHandle(path=destination, mime_type=mime_type, size_bytes=size)

    async def stage_book_files(
        self,
        cover_uploads: Optional[Sequence[UploadFile]],
        document_uploads: Optional[Sequence[UploadFile]],
    ) -> StagedBookFiles:
        staged = StagedBookFiles()
        try:
            staged.cover = await self.stage(COVER_FIELD, cover_uploads, require_image=True)
            staged.document = await self.stage(DOCUMENT_FIELD, document_uploads)
        except BaseException:
            staged.discard()
            raise
        return staged
