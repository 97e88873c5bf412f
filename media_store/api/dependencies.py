"""FastAPI dependencies for the media routes."""

from typing import Optional

from fastapi import Header

from media_store.core.config import settings
from media_store.core.errors import ErrorCode, InvalidArgumentError
from media_store.services import ReferenceCountedObjectStore, get_media_store


def get_media_provider() -> ReferenceCountedObjectStore:
    """Media provider dependency; tests override it with a tmp_path store."""
    return get_media_store()


async def verify_content_length(content_length: Optional[int] = Header(None)) -> Optional[int]:
    """Pre-validate upload size before the body is read.

    Raises:
        InvalidArgumentError: 413 if the declared size exceeds MAX_UPLOAD_SIZE_MB
    """
    max_size = settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024
    if content_length and content_length > max_size:
        error = InvalidArgumentError(
            f"File too large. Maximum allowed: {settings.MAX_UPLOAD_SIZE_MB}MB",
            {"max_size_mb": settings.MAX_UPLOAD_SIZE_MB, "content_length": content_length},
            code=ErrorCode.VAL_UPLOAD_TOO_LARGE,
        )
        error.http_status = 413
        raise error
    return content_length
