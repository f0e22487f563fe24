"""
shared/utils/uploads.py
Photo upload handling: name sanitization, type/size validation, saving to
the local upload directory.
"""

import asyncio
import os
import secrets
from pathlib import Path

from fastapi import UploadFile

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}
IMAGE_MIME_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}
MAX_IMAGE_BYTES = 5 * 1024 * 1024


class UploadError(ValueError):
    pass


def safe_filename(filename: str) -> str:
    """Strip directory components and unsafe characters."""
    name = os.path.basename(filename or "")
    name = "".join(ch for ch in name if ch.isalnum() or ch in "._-").lstrip(".-")
    if not name:
        raise UploadError("Filename contains no valid characters")
    return name[-100:]


def unique_filename(original: str, prefix: str) -> str:
    stem, ext = os.path.splitext(safe_filename(original))
    return f"{prefix}-{secrets.token_hex(8)}{ext.lower()}"


async def save_image(upload: UploadFile, directory: str, prefix: str) -> str:
    """Validate and store one image. Returns the stored path."""
    ext = os.path.splitext(upload.filename or "")[1].lower()
    if ext not in IMAGE_EXTENSIONS or upload.content_type not in IMAGE_MIME_TYPES:
        raise UploadError(f"Only image files are allowed: {upload.filename}")

    data = await upload.read()
    if not 0 < len(data) <= MAX_IMAGE_BYTES:
        raise UploadError(f"File size must be between 1 byte and 5MB: {upload.filename}")

    target_dir = Path(directory)
    target = target_dir / unique_filename(upload.filename, prefix)

    def _write() -> None:
        target_dir.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    await asyncio.to_thread(_write)
    return target.as_posix()
