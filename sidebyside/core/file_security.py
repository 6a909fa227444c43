# sidebyside/core/file_security.py
import base64
import binascii
import os
import re

from fastapi import HTTPException, status

from sidebyside.models.voting import MediaType

# Limits
MAX_IMAGE_SIZE = 10 * 1024 * 1024  # 10MB
MAX_VIDEO_SIZE = 100 * 1024 * 1024  # 100MB

IMAGE_MIME_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/avif": ".avif",
}
VIDEO_MIME_TYPES = {
    "video/mp4": ".mp4",
    "video/webm": ".webm",
    "video/quicktime": ".mov",
}
IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".avif"}
VIDEO_EXTENSIONS = {".mp4", ".webm", ".mov"}

CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".avif": "image/avif",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".mov": "video/quicktime",
}

DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)(?:;[\w-]+=[\w.-]+)*;base64,(?P<data>.+)$", re.DOTALL)
SAFE_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-]+\.[A-Za-z0-9]+$")


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def media_type_for(content_type: str) -> MediaType:
    """Classify a MIME type, 400 if unsupported"""
    if content_type in IMAGE_MIME_TYPES:
        return MediaType.IMAGE
    if content_type in VIDEO_MIME_TYPES:
        return MediaType.VIDEO
    raise _bad_request(f"Unsupported file type: {content_type}")


def validate_extension(filename: str, media_type: MediaType) -> str:
    """Extension of the upload; must match its media kind"""
    ext = os.path.splitext(filename)[1].lower()
    allowed = IMAGE_EXTENSIONS if media_type == MediaType.IMAGE else VIDEO_EXTENSIONS
    if ext not in allowed:
        raise _bad_request(f"Unsupported file extension: {ext or '(none)'}")
    return ext


def validate_size(size: int, media_type: MediaType) -> None:
    limit = MAX_IMAGE_SIZE if media_type == MediaType.IMAGE else MAX_VIDEO_SIZE
    if size == 0:
        raise _bad_request("Empty file")
    if size > limit:
        raise _bad_request(f"File is too large. Max: {limit // 1024 // 1024}MB")


def decode_data_url(value: str) -> tuple[str, bytes]:
    """data:<mime>;base64,<payload> -> (mime, bytes)"""
    match = DATA_URL_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise _bad_request("Invalid data URL")

    try:
        data = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError):
        raise _bad_request("Invalid base64 payload")

    return match.group("mime").lower(), data


def extension_for(content_type: str) -> str:
    return IMAGE_MIME_TYPES.get(content_type) or VIDEO_MIME_TYPES[content_type]


def sanitize_filename(filename: str) -> str:
    """Strip paths and unsafe characters from a client filename"""
    filename = os.path.basename(filename or "")
    filename = filename.replace(" ", "_")

    name, ext = os.path.splitext(filename)
    safe_name = "".join(c for c in name if c.isalnum() or c in "_-@.").strip(".")

    if len(safe_name) > 50:
        safe_name = safe_name[:50]

    return f"{safe_name}{ext.lower()}"


def is_safe_storage_key(filename: str) -> bool:
    """Guard for keys coming from the URL path"""
    if ".." in filename or "/" in filename or "\\" in filename:
        return False
    return bool(SAFE_KEY_PATTERN.match(filename))


def content_type_for_key(key: str) -> str | None:
    return CONTENT_TYPES.get(os.path.splitext(key)[1].lower())
