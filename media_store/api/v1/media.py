"""
Media API endpoints.

Thin HTTP layer over the reference-counted media provider. Every route
accepts ``?bucket=`` to override the configured bucket for that call.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile
from fastapi.responses import StreamingResponse

from media_store.api.dependencies import get_media_provider, verify_content_length
from media_store.core.logging_config import get_logger
from media_store.services import ReferenceCountedObjectStore
from media_store.storage import StoreResult


logger = get_logger(__name__)
router = APIRouter(prefix="/api/v1", tags=["media"])


def _options(bucket: Optional[str]) -> Optional[Dict[str, Any]]:
    return {"bucket": bucket} if bucket else None


def _result_payload(result: StoreResult) -> Dict[str, Any]:
    return {
        "bucket": result.bucket,
        "key": result.key,
        "action": result.action,
        "etag": result.etag,
        "references": result.references,
    }


@router.head("/media/{media_path:path}")
async def media_exists(
    media_path: str,
    bucket: Optional[str] = Query(None),
    store: ReferenceCountedObjectStore = Depends(get_media_provider),
):
    """200 when an object exists at the path, 404 otherwise."""
    found = await store.exists(media_path, _options(bucket))
    return Response(status_code=200 if found else 404)


@router.get("/media/{media_path:path}")
async def download_media(
    media_path: str,
    bucket: Optional[str] = Query(None),
    store: ReferenceCountedObjectStore = Depends(get_media_provider),
):
    """Stream the media payload.

    Raises:
        ObjectNotFoundError: 404 if there is no object at the path
    """
    handle = await store.get_stream(media_path, _options(bucket))

    async def body():
        async with handle:
            async for chunk in handle:
                yield chunk

    headers = {}
    if handle.content_length is not None:
        headers["Content-Length"] = str(handle.content_length)

    return StreamingResponse(
        body(),
        media_type=handle.content_type or "application/octet-stream",
        headers=headers,
    )


@router.put("/media/{media_path:path}", status_code=201)
async def upload_media(
    media_path: str,
    file: UploadFile = File(...),
    bucket: Optional[str] = Query(None),
    content_length: Optional[int] = Depends(verify_content_length),
    store: ReferenceCountedObjectStore = Depends(get_media_provider),
):
    """Store the uploaded file as a new object with a single reference."""
    options: Dict[str, Any] = {"content_type": file.content_type}
    if bucket:
        options["bucket"] = bucket

    result = await store.set_stream(file.file, media_path, options)

    logger.info(
        "media_uploaded",
        bucket=result.bucket,
        key=result.key,
        filename=file.filename,
        content_length=content_length,
    )
    return _result_payload(result)


@router.delete("/media/{media_path:path}")
async def delete_media(
    media_path: str,
    bucket: Optional[str] = Query(None),
    store: ReferenceCountedObjectStore = Depends(get_media_provider),
):
    """Release one reference; the object is removed with its last reference."""
    result = await store.delete(media_path, _options(bucket))
    return _result_payload(result)


@router.get("/stat/{media_path:path}")
async def stat_media(
    media_path: str,
    bucket: Optional[str] = Query(None),
    store: ReferenceCountedObjectStore = Depends(get_media_provider),
):
    """Object metadata as reported by the store."""
    head = await store.stat(media_path, _options(bucket))
    return {
        "bucket": head.bucket,
        "key": head.key,
        "metadata": head.metadata,
        "etag": head.etag,
        "last_modified": head.last_modified.isoformat() if head.last_modified else None,
        "content_length": head.content_length,
        "content_type": head.content_type,
    }


@router.post("/references/{media_path:path}")
async def add_media_reference(
    media_path: str,
    bucket: Optional[str] = Query(None),
    store: ReferenceCountedObjectStore = Depends(get_media_provider),
):
    """Record one more logical reference to an existing object."""
    result = await store.add_references(media_path, _options(bucket))
    return _result_payload(result)
