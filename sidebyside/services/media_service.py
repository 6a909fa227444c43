# sidebyside/services/media_service.py
import hashlib
import io
import re
from dataclasses import dataclass

from fastapi import HTTPException, status
from PIL import Image, UnidentifiedImageError

from sidebyside.core import file_security
from sidebyside.core.logger import logger
from sidebyside.models.voting import MediaType
from sidebyside.services.storage_service import StorageDriver

PIXEL_RATIO_PATTERN = re.compile(r"@(\d+(?:\.\d+)?)x$")


@dataclass
class MediaUpload:
    """Raw media as received (multipart file or decoded data URL)"""
    filename: str
    content_type: str
    data: bytes
    pixel_ratio: float | None = None
    width: int | None = None
    height: int | None = None


@dataclass
class PreparedMedia:
    upload: MediaUpload
    media_type: MediaType
    extension: str
    width: int
    height: int
    pixel_ratio: float


@dataclass
class StoredMedia:
    key: str
    media_type: MediaType
    width: int
    height: int
    pixel_ratio: float


def detect_pixel_ratio(filename: str) -> float:
    """'shot@2x.png' -> 2.0, anything else -> 1.0"""
    stem = filename.rsplit(".", 1)[0]
    match = PIXEL_RATIO_PATTERN.search(stem)
    if not match:
        return 1.0
    ratio = float(match.group(1))
    return ratio if ratio > 0 else 1.0


def read_image_size(data: bytes) -> tuple[int, int]:
    """Pixel size of an image, 400 if Pillow cannot decode it"""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.size
    except (UnidentifiedImageError, OSError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid image file"
        )


def prepare_media(upload: MediaUpload) -> PreparedMedia:
    """Validate one upload and resolve its dimensions"""
    media_type = file_security.media_type_for(upload.content_type)
    extension = file_security.validate_extension(upload.filename, media_type)
    file_security.validate_size(len(upload.data), media_type)

    pixel_ratio = upload.pixel_ratio or detect_pixel_ratio(upload.filename)

    if media_type == MediaType.IMAGE:
        width, height = read_image_size(upload.data)
    else:
        # No decoder for video; the client reports its size
        if not upload.width or not upload.height:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Video width and height are required"
            )
        width, height = upload.width, upload.height

    return PreparedMedia(
        upload=upload,
        media_type=media_type,
        extension=extension,
        width=int(width),
        height=int(height),
        pixel_ratio=float(pixel_ratio),
    )


def storage_key(voting_id: str, index: int, prepared: PreparedMedia) -> str:
    digest = hashlib.sha256(prepared.upload.data).hexdigest()[:16]
    return f"{voting_id}_{index}_{digest}{prepared.extension}"


def store_media(storage: StorageDriver, voting_id: str, uploads: list[MediaUpload]) -> list[StoredMedia]:
    """
    Validate every upload first, then write them all.

    Nothing is written if any upload is rejected.
    """
    prepared = [prepare_media(upload) for upload in uploads]

    stored = []
    for index, item in enumerate(prepared):
        key = storage_key(voting_id, index, item)
        storage.put_object(key, item.upload.data, item.upload.content_type)
        logger.debug(f"Stored {item.media_type.value} {key} ({len(item.upload.data)} bytes)")
        stored.append(
            StoredMedia(
                key=key,
                media_type=item.media_type,
                width=item.width,
                height=item.height,
                pixel_ratio=item.pixel_ratio,
            )
        )

    return stored


def delete_media(storage: StorageDriver, keys: list[str]) -> None:
    """Best effort; failures are logged"""
    for key in keys:
        try:
            storage.delete_object(key)
        except Exception as e:
            logger.warning(f"Failed to delete media {key}: {e}")
