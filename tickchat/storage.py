import logging
import os
import random
import time
from pathlib import Path

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from tickchat.config import settings
from tickchat.errors import ValidationError

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".jpeg", ".jpg", ".png", ".gif", ".webp"}
IMAGE_CONTENT_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"}
PDF_CONTENT_TYPE = "application/pdf"

CHUNK_SIZE = 1024 * 1024


def unique_filename(original_name: str) -> str:
    suffix = Path(original_name or "").suffix.lower()
    return f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}{suffix}"


def validate_image(upload: UploadFile) -> None:
    extension = Path(upload.filename or "").suffix.lower()
    if extension not in IMAGE_EXTENSIONS or (upload.content_type or "").lower() not in IMAGE_CONTENT_TYPES:
        raise ValidationError("Only images are allowed")


def validate_pdf(upload: UploadFile) -> None:
    if (upload.content_type or "").lower() != PDF_CONTENT_TYPE:
        raise ValidationError("Only PDFs are allowed")


def _write_upload(upload: UploadFile, destination: Path, max_bytes: int) -> int:
    written = 0
    destination.parent.mkdir(parents=True, exist_ok=True)
    upload.file.seek(0)
    try:
        with open(destination, "wb") as fh:
            while True:
                chunk = upload.file.read(CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_bytes:
                    raise ValidationError(f"File exceeds the {max_bytes} byte limit")
                fh.write(chunk)
    except ValidationError:
        destination.unlink(missing_ok=True)
        raise
    if written == 0:
        destination.unlink(missing_ok=True)
        raise ValidationError("Uploaded file is empty")
    return written


class FileStorage:
    """Stores attachments on disk; the chat core only keeps the returned reference."""

    def __init__(self, image_dir: str = None, upload_dir: str = None, max_bytes: int = None):
        self.image_dir = Path(image_dir or settings.IMAGE_DIR)
        self.upload_dir = Path(upload_dir or settings.UPLOAD_DIR)
        self.max_bytes = max_bytes or settings.MAX_UPLOAD_BYTES

    def ensure_dirs(self) -> None:
        os.makedirs(self.image_dir, exist_ok=True)
        os.makedirs(self.upload_dir, exist_ok=True)

    async def save_image(self, upload: UploadFile) -> str:
        validate_image(upload)
        filename = unique_filename(upload.filename)
        size = await run_in_threadpool(_write_upload, upload, self.image_dir / filename, self.max_bytes)
        logger.info("Stored image %s (%d bytes)", filename, size)
        return f"/images/{filename}"

    async def save_pdf(self, upload: UploadFile) -> str:
        validate_pdf(upload)
        filename = unique_filename(upload.filename)
        size = await run_in_threadpool(_write_upload, upload, self.upload_dir / filename, self.max_bytes)
        logger.info("Stored document %s (%d bytes)", filename, size)
        return f"uploads/{filename}"
