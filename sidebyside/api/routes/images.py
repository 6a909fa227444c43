# sidebyside/api/routes/images.py
from fastapi import APIRouter, Depends, HTTPException, Response, status

from sidebyside.core import file_security
from sidebyside.services.storage_service import DEFAULT_CACHE_CONTROL, ObjectNotFound, StorageDriver, get_storage

router = APIRouter(prefix="/api/images", tags=["images"])


@router.get("/{filename}")
def get_image(filename: str, storage: StorageDriver = Depends(get_storage)):
    """Serve an uploaded image or video by storage key"""
    if not file_security.is_safe_storage_key(filename):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid filename"
        )

    content_type = file_security.content_type_for_key(filename)
    if content_type is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="File type not allowed"
        )

    try:
        data = storage.get_object(filename)
    except ObjectNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="File not found"
        )

    return Response(
        content=data,
        media_type=content_type,
        headers={"Cache-Control": DEFAULT_CACHE_CONTROL},
    )
