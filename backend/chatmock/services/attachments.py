"""Attachment allowlist and short-lived staging of uploaded files.

Uploads are checked before the chat engine runs. On the network path each
accepted file is copied to ``upload_dir`` and removed again after a short
delay; nothing outlives the request by more than that delay.
"""

from __future__ import annotations

import asyncio
import logging
import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Set, Tuple

from starlette.datastructures import UploadFile

from ..config import ALLOWED_UPLOAD_TYPES, Settings

logger = logging.getLogger(__name__)


class AttachmentRejected(Exception):
    """An uploaded file failed the allowlist or size/count limits."""

    status_code = 400

    def __init__(self, error: str, message: str):
        super().__init__(message)
        self.error = error
        self.message = message


def measured_size(upload: UploadFile) -> int:
    """Size as counted by the multipart parser, never a client-declared header."""
    size = getattr(upload, "size", None)
    if size is None:
        upload.file.seek(0, os.SEEK_END)
        size = upload.file.tell()
        upload.file.seek(0)
    return int(size)


def _megabytes(n: int) -> str:
    return f"{n // (1024 * 1024)}MB" if n >= 1024 * 1024 else f"{n} bytes"


@dataclass(frozen=True)
class AttachmentPolicy:
    allowed_types: Tuple[str, ...] = ALLOWED_UPLOAD_TYPES
    max_file_bytes: int = 10 * 1024 * 1024
    max_files: int = 5

    @classmethod
    def from_settings(cls, settings: Settings) -> "AttachmentPolicy":
        return cls(max_file_bytes=settings.upload_max_bytes, max_files=settings.upload_max_files)

    def check(self, uploads: Sequence[UploadFile]) -> None:
        if len(uploads) > self.max_files:
            raise AttachmentRejected("Too many files", f"Maximum {self.max_files} files allowed")
        for upload in uploads:
            mime = upload.content_type or "application/octet-stream"
            if mime not in self.allowed_types:
                raise AttachmentRejected("Unsupported file type", f"File type {mime} not allowed")
            if measured_size(upload) > self.max_file_bytes:
                raise AttachmentRejected(
                    "File too large", f"Maximum file size is {_megabytes(self.max_file_bytes)}"
                )


class AttachmentStore:
    """Stage uploads on disk and delete them after ``cleanup_delay`` seconds."""

    def __init__(self, upload_dir: str | os.PathLike, cleanup_delay: float = 5.0):
        self.upload_dir = Path(upload_dir)
        self.cleanup_delay = cleanup_delay
        self._pending: Set[asyncio.Task] = set()
        self._staged: Set[Path] = set()

    @classmethod
    def from_settings(cls, settings: Settings) -> "AttachmentStore":
        return cls(settings.upload_dir, settings.upload_cleanup_seconds)

    @property
    def staged(self) -> List[Path]:
        return sorted(self._staged)

    async def stage(self, uploads: Sequence[UploadFile]) -> List[Path]:
        if not uploads:
            return []
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        paths: List[Path] = []
        for upload in uploads:
            suffix = Path(upload.filename or "").suffix
            dest = self.upload_dir / f"{uuid.uuid4().hex}{suffix}"
            await upload.seek(0)
            dest.write_bytes(await upload.read())
            await upload.seek(0)
            logger.info("[uploads] Staged %s (%s) -> %s", upload.filename, upload.content_type, dest)
            self._staged.add(dest)
            paths.append(dest)
        task = asyncio.create_task(self._delayed_cleanup(paths))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return paths

    async def _delayed_cleanup(self, paths: List[Path]):
        await asyncio.sleep(self.cleanup_delay)
        self._remove(paths)

    def _remove(self, paths: Sequence[Path]):
        for path in paths:
            self._staged.discard(path)
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError:
                logger.exception("[uploads] Error deleting %s", path)

    async def aclose(self, remove: bool = True):
        """Cancel pending cleanups; staged files are removed immediately unless ``remove`` is false."""
        for task in list(self._pending):
            task.cancel()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        if remove:
            self._remove(list(self._staged))
