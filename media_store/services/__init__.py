"""
Services package - Business Logic Layer

Contains the reference-counted media provider, separated from HTTP/API concerns.
"""
from functools import lru_cache

from media_store.core.config import settings
from media_store.services.media_provider import (
    MediaOptions,
    ReferenceCountedObjectStore,
    normalize_media_path,
    parse_reference_count,
)
from media_store.storage import get_object_store


@lru_cache()
def get_media_store() -> ReferenceCountedObjectStore:
    """Process-wide media provider built from the global settings."""
    return ReferenceCountedObjectStore(get_object_store(settings), settings)


__all__ = [
    "get_media_store",
    "MediaOptions",
    "ReferenceCountedObjectStore",
    "normalize_media_path",
    "parse_reference_count",
]
