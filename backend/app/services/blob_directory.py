"""
Filesystem storage for uploaded files.

Layout::

    <root>/.temporary_uploads/<userId>/<originalFilename>   staging
    <root>/<userId>/<reportId>/<fileName><ext>              permanent
"""

import asyncio
import functools
import logging
import os
from pathlib import Path

from fastapi import UploadFile

from backend.app.core.config import settings
from backend.app.core.exceptions import UploadTooLargeError, ValidationError

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024


def safe_component(value: str, label: str) -> str:
    """
    Reduce a user-supplied path component to a plain name.

    Raises:
        ValidationError: If nothing usable is left
    """
    name = Path(value.replace("\\", "/")).name.strip()
    if not name or name in (".", ".."):
        raise ValidationError(f"{label} is invalid")
    return name


def _copy_limited(source, target: Path, limit: int) -> int:
    """Copy ``source`` into ``target`` chunk by chunk, refusing more than ``limit`` bytes."""
    if hasattr(source, "seek"):
        source.seek(0)
    written = 0
    with target.open("wb") as buffer:
        while True:
            chunk = source.read(_CHUNK_SIZE)
            if not chunk:
                break
            written += len(chunk)
            if written > limit:
                raise UploadTooLargeError(limit)
            buffer.write(chunk)
    return written


class BlobDirectory:
    """Per-user, per-report directory tree holding uploaded source files."""

    def __init__(
        self,
        root: str | Path | None = None,
        temporary_dir_name: str | None = None,
        max_upload_size: int | None = None,
    ):
        self.root = Path(root if root is not None else settings.upload_root)
        self.temporary_dir_name = temporary_dir_name or settings.temporary_dir_name
        self.max_upload_size = max_upload_size or settings.max_upload_size

    def temporary_path(self, user_id: str, original_filename: str) -> Path:
        """Staging location for an in-flight upload."""
        return (
            self.root
            / self.temporary_dir_name
            / safe_component(user_id, "userId")
            / safe_component(original_filename, "File name")
        )

    def destination_path(
        self,
        user_id: str,
        report_id: str,
        original_filename: str,
        file_name: str | None = None,
    ) -> Path:
        """
        Permanent location for a file.

        The stored name is ``file_name`` (or the original stem) followed by the
        original extension.
        """
        original = safe_component(original_filename, "File name")
        extension = Path(original).suffix
        stem = safe_component(file_name, "fileName") if file_name else Path(original).stem
        return (
            self.root
            / safe_component(user_id, "userId")
            / safe_component(report_id, "reportId")
            / f"{stem}{extension}"
        )

    async def stage_upload(self, upload: UploadFile, user_id: str) -> Path:
        """
        Write an uploaded file to its staging path without blocking the event loop.

        Raises:
            UploadTooLargeError: If the upload exceeds ``max_upload_size``;
                the partial file is removed first
        """
        target = self.temporary_path(user_id, upload.filename or "")
        target.parent.mkdir(parents=True, exist_ok=True)

        loop = asyncio.get_running_loop()
        copy_operation = functools.partial(_copy_limited, upload.file, target, self.max_upload_size)
        try:
            size = await loop.run_in_executor(None, copy_operation)
        except UploadTooLargeError:
            self.discard(target)
            raise

        logger.info(f"[BLOB] Staged {target.name} ({size} bytes) for user {user_id}")
        return target

    def relocate(self, source: Path, destination: Path) -> Path:
        """Move a staged file to its destination with an atomic rename."""
        destination.parent.mkdir(parents=True, exist_ok=True)
        os.replace(source, destination)
        logger.info(f"[BLOB] Moved {source} -> {destination}")
        return destination

    def discard(self, path: Path) -> None:
        """Delete a file if it exists."""
        path.unlink(missing_ok=True)
