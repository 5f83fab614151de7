"""
Uploaded file storage on local disk.

Files live under ``UPLOAD_DIR/<folder>/<owner_id>/`` and are named
``{id}_{original_filename}``; the database keeps the path relative to
``UPLOAD_DIR``.
"""
import logging
import os
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, UploadFile, status

from comunigov.core.config import settings
from comunigov.models.base import generate_id

logger = logging.getLogger(__name__)


@dataclass
class StoredFile:
    id: str
    name: str
    path: str
    size: int
    content_type: str


def ensure_upload_dir(folder: str, owner_id: str) -> str:
    directory = os.path.join(settings.UPLOAD_DIR, folder, owner_id)
    os.makedirs(directory, exist_ok=True)
    return directory


def resolve_path(relative_path: str) -> str:
    """Absolute location of a stored file."""
    return os.path.join(settings.UPLOAD_DIR, relative_path)


async def save_upload(
    upload: UploadFile,
    folder: str,
    owner_id: str,
    max_size: Optional[int] = None,
) -> StoredFile:
    """Write an upload to disk. 413 when it exceeds ``max_size``."""
    limit = max_size or settings.MAX_UPLOAD_SIZE
    content = await upload.read()
    if len(content) > limit:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds the {limit // (1024 * 1024)}MB limit"
        )

    original_name = os.path.basename(upload.filename or "uploaded_file")
    file_id = generate_id()
    directory = ensure_upload_dir(folder, owner_id)
    stored_path = os.path.join(directory, f"{file_id}_{original_name}")

    try:
        with open(stored_path, "wb") as f:
            f.write(content)
    except OSError as e:
        logger.error("Failed to store upload %s: %s", original_name, e)
        raise HTTPException(status_code=500, detail="Failed to store file")

    logger.info("Stored upload %s (%d bytes) in %s", original_name, len(content), folder)
    return StoredFile(
        id=file_id,
        name=original_name,
        path=os.path.relpath(stored_path, settings.UPLOAD_DIR),
        size=len(content),
        content_type=upload.content_type or "application/octet-stream",
    )


def remove_stored(relative_path: str) -> None:
    """Delete a stored file; a file that is already gone is not an error."""
    try:
        os.remove(resolve_path(relative_path))
    except FileNotFoundError:
        logger.warning("Stored file %s was already removed", relative_path)
