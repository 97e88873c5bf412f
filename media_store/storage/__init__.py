"""Object store clients for local and cloud storage."""

from media_store.core.config import Settings
from media_store.core.errors import ConfigurationError
from .protocol import ObjectBody, ObjectHead, ObjectStoreClient, StoreResult, StreamHandle, drain_body
from .local import LocalObjectStoreClient
# S3 client imported lazily when needed


def get_object_store(settings: Settings) -> ObjectStoreClient:
    """Factory function for the object store client.

    Returns the client selected by STORAGE_BACKEND.

    Raises:
        ConfigurationError: If an unknown storage backend is configured
    """
    if settings.STORAGE_BACKEND == "local":
        return LocalObjectStoreClient(settings.STORAGE_PATH, chunk_size=settings.STREAM_CHUNK_SIZE)
    elif settings.STORAGE_BACKEND == "s3":
        # Lazy import to avoid requiring aioboto3 when using local storage
        from .s3 import S3ObjectStoreClient
        return S3ObjectStoreClient.from_settings(settings)
    else:
        raise ConfigurationError(
            f"Unknown storage backend: {settings.STORAGE_BACKEND}",
            {"storage_backend": settings.STORAGE_BACKEND},
        )


__all__ = [
    "get_object_store",
    "ObjectStoreClient",
    "ObjectBody",
    "ObjectHead",
    "StoreResult",
    "StreamHandle",
    "drain_body",
    "LocalObjectStoreClient",
]
