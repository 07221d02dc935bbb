"""
file_service.py — Helpers for incoming file uploads.

The blob is written through storage.StorageBackend before the share record
is created; this module only decides MIME type, storage key and size limits.
"""
import os
import uuid

from dotenv import load_dotenv

from errors import ValidationError

load_dotenv()

MAX_UPLOAD_BYTES = int(float(os.getenv("MAX_UPLOAD_MB", "10")) * 1024 * 1024)

# Extension → MIME type map (avoids python-magic cross-platform issues)
MIME_MAP = {
    "pdf":  "application/pdf",
    "png":  "image/png",
    "jpg":  "image/jpeg",
    "jpeg": "image/jpeg",
    "gif":  "image/gif",
    "webp": "image/webp",
    "svg":  "image/svg+xml",
    "txt":  "text/plain",
    "md":   "text/markdown",
    "html": "text/html",
    "csv":  "text/csv",
    "json": "application/json",
    "xml":  "application/xml",
    "zip":  "application/zip",
    "tar":  "application/x-tar",
    "gz":   "application/gzip",
    "mp4":  "video/mp4",
    "mp3":  "audio/mpeg",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
}


def _extension(filename: str) -> str:
    if filename and "." in filename:
        return filename.rsplit(".", 1)[-1].lower()
    return ""


def detect_mime(filename: str) -> str:
    """Detect MIME type from file extension."""
    return MIME_MAP.get(_extension(filename), "application/octet-stream")


def build_storage_key(owner_id: str, filename: str) -> str:
    """Per-owner random key; keeps the original extension so downloads open correctly."""
    ext = _extension(filename)
    name = uuid.uuid4().hex
    return f"{owner_id}/{name}.{ext}" if ext else f"{owner_id}/{name}"


def check_upload_size(size: int, limit: int = MAX_UPLOAD_BYTES):
    if size <= 0:
        raise ValidationError("Please select a file to share")
    if size > limit:
        raise ValidationError(f"File is too large (max {limit // (1024 * 1024)} MB)")
