"""Local filesystem object store client."""

import asyncio
import hashlib
import inspect
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Dict, Optional

import aiofiles
import aiofiles.os

from media_store.core.errors import (
    ErrorCode,
    InvalidArgumentError,
    ObjectNotFoundError,
    PreconditionFailedError,
    StoreError,
)
from media_store.core.logging_config import get_logger
from media_store.storage.protocol import ObjectBody, ObjectHead, StoreResult, StreamHandle, WritePayload


logger = get_logger(__name__)


class LocalObjectStoreClient:
    """Local filesystem implementation of the object store client.

    Payloads live under ``<base>/objects/<bucket>/<key>`` and metadata in JSON
    sidecars under ``<base>/metadata/<bucket>/<key>.json``. A payload without
    a sidecar (copied in by hand, or written before metadata existed) reads as
    an object with empty metadata.

    Mutations are serialized by an in-process lock. Like S3, last-modified
    times are kept in whole seconds, so ``if_unmodified_since`` cannot tell
    apart two writes within the same second. Suitable for development and
    tests.
    """

    def __init__(self, base_path: str, chunk_size: int = 8192):
        """Initialize local object store.

        Args:
            base_path: Root directory for object storage
            chunk_size: Read size used for streamed payloads
        """
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.chunk_size = chunk_size
        self._lock = asyncio.Lock()

    def _paths(self, bucket: str, key: str):
        if not bucket or not key:
            raise InvalidArgumentError(
                "Bucket and key must be non-empty",
                {"bucket": bucket, "key": key},
                code=ErrorCode.VAL_INVALID_PATH,
            )
        if ".." in Path(key).parts or ".." in Path(bucket).parts or key.startswith("/"):
            raise InvalidArgumentError(
                "Path traversal patterns are not allowed",
                {"bucket": bucket, "key": key},
                code=ErrorCode.VAL_INVALID_PATH,
            )
        data_path = self.base_path / "objects" / bucket / key
        meta_path = self.base_path / "metadata" / bucket / f"{key}.json"
        return data_path, meta_path

    async def _read_sidecar(self, meta_path: Path) -> Optional[dict]:
        if not meta_path.is_file():
            return None
        async with aiofiles.open(meta_path, "r") as f:
            return json.loads(await f.read())

    async def _write_sidecar(self, meta_path: Path, record: dict) -> None:
        # Replace atomically; heads read sidecars without taking the lock.
        meta_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = meta_path.with_name(f"{meta_path.name}.tmp")
        async with aiofiles.open(tmp_path, "w") as f:
            await f.write(json.dumps(record))
        await aiofiles.os.replace(tmp_path, meta_path)

    async def _head(self, bucket: str, key: str) -> ObjectHead:
        data_path, meta_path = self._paths(bucket, key)
        if not data_path.is_file():
            raise ObjectNotFoundError(
                f"Object not found: {bucket}/{key}", {"bucket": bucket, "key": key}
            )

        record = await self._read_sidecar(meta_path)
        if record is None:
            stat = data_path.stat()
            return ObjectHead(
                bucket=bucket,
                key=key,
                metadata={},
                last_modified=datetime.fromtimestamp(int(stat.st_mtime), timezone.utc),
                content_length=stat.st_size,
            )

        return ObjectHead(
            bucket=bucket,
            key=key,
            metadata=dict(record.get("metadata") or {}),
            etag=record.get("etag"),
            last_modified=datetime.fromisoformat(record["last_modified"]),
            content_length=record.get("content_length"),
            content_type=record.get("content_type"),
            raw=record,
        )

    @staticmethod
    def _now() -> datetime:
        # S3 reports LastModified in whole seconds.
        return datetime.now(timezone.utc).replace(microsecond=0)

    async def head_object(self, bucket: str, key: str) -> ObjectHead:
        logger.debug("local_object_head_started", bucket=bucket, key=key)
        return await self._head(bucket, key)

    async def _iter_file(self, path: Path) -> AsyncIterator[bytes]:
        async with aiofiles.open(path, "rb") as f:
            while chunk := await f.read(self.chunk_size):
                yield chunk

    async def get_object(self, bucket: str, key: str) -> ObjectBody:
        head = await self._head(bucket, key)
        data_path, _ = self._paths(bucket, key)
        chunks = self._iter_file(data_path)

        logger.info("local_object_get_success", bucket=bucket, key=key, content_length=head.content_length)
        return StreamHandle(
            chunks,
            close=chunks.aclose,
            content_length=head.content_length,
            content_type=head.content_type,
        )

    async def _write_payload(self, data_path: Path, body: WritePayload) -> Dict[str, object]:
        """Write a payload and return its length and MD5 ETag."""
        data_path.parent.mkdir(parents=True, exist_ok=True)
        digest = hashlib.md5()
        bytes_written = 0

        async with aiofiles.open(data_path, "wb") as f:
            if isinstance(body, (bytes, bytearray, str)):
                chunk = body.encode("utf-8") if isinstance(body, str) else bytes(body)
                await f.write(chunk)
                digest.update(chunk)
                bytes_written = len(chunk)
            else:
                if hasattr(body, "seek"):
                    body.seek(0)
                while True:
                    chunk = body.read(self.chunk_size)
                    if inspect.isawaitable(chunk):
                        chunk = await chunk
                    if not chunk:
                        break
                    if isinstance(chunk, str):
                        chunk = chunk.encode("utf-8")
                    await f.write(chunk)
                    digest.update(chunk)
                    bytes_written += len(chunk)

        return {"content_length": bytes_written, "etag": digest.hexdigest()}

    async def put_object(
        self,
        bucket: str,
        key: str,
        body: WritePayload,
        metadata: Dict[str, str],
        content_type: Optional[str] = None,
    ) -> StoreResult:
        data_path, meta_path = self._paths(bucket, key)
        logger.debug("local_object_put_started", bucket=bucket, key=key, metadata=metadata)

        try:
            async with self._lock:
                written = await self._write_payload(data_path, body)
                record = {
                    "metadata": dict(metadata),
                    "etag": written["etag"],
                    "content_length": written["content_length"],
                    "content_type": content_type or "application/octet-stream",
                    "last_modified": self._now().isoformat(),
                }
                await self._write_sidecar(meta_path, record)
        except OSError as exc:
            logger.error(
                "local_object_put_failed",
                bucket=bucket,
                key=key,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise StoreError(
                f"Write failed for {bucket}/{key}: {exc}",
                {"bucket": bucket, "key": key},
                code=ErrorCode.STORAGE_WRITE_FAILED,
            ) from exc

        logger.info(
            "local_object_put_success",
            bucket=bucket,
            key=key,
            bytes_written=written["content_length"],
        )
        return StoreResult(bucket=bucket, key=key, action="put", etag=record["etag"], raw=record)

    async def copy_object(
        self,
        bucket: str,
        source_key: str,
        dest_key: str,
        metadata: Dict[str, str],
        replace_metadata: bool = True,
        if_unmodified_since: Optional[datetime] = None,
        content_type: Optional[str] = None,
    ) -> StoreResult:
        source_path, _ = self._paths(bucket, source_key)
        dest_path, dest_meta_path = self._paths(bucket, dest_key)

        async with self._lock:
            source = await self._head(bucket, source_key)

            if (if_unmodified_since is not None and source.last_modified is not None
                    and source.last_modified > if_unmodified_since):
                raise PreconditionFailedError(
                    f"{bucket}/{source_key} was modified after {if_unmodified_since.isoformat()}",
                    {"bucket": bucket, "key": source_key},
                )

            try:
                if source_path != dest_path:
                    async with aiofiles.open(source_path, "rb") as src:
                        written = await self._write_payload(dest_path, await src.read())
                    etag = written["etag"]
                else:
                    etag = source.etag

                record = {
                    "metadata": dict(metadata) if replace_metadata else dict(source.metadata),
                    "etag": etag,
                    "content_length": source.content_length,
                    "content_type": (content_type if replace_metadata and content_type else None)
                    or source.content_type or "application/octet-stream",
                    "last_modified": self._now().isoformat(),
                }
                await self._write_sidecar(dest_meta_path, record)
            except OSError as exc:
                raise StoreError(
                    f"Copy failed for {bucket}/{source_key}: {exc}",
                    {"bucket": bucket, "source_key": source_key, "dest_key": dest_key},
                    code=ErrorCode.STORAGE_COPY_FAILED,
                ) from exc

        logger.info("local_object_copy_success", bucket=bucket, source_key=source_key, dest_key=dest_key)
        return StoreResult(bucket=bucket, key=dest_key, action="copy", etag=etag, raw=record)

    async def delete_object(self, bucket: str, key: str) -> StoreResult:
        data_path, meta_path = self._paths(bucket, key)

        async with self._lock:
            try:
                if data_path.exists():
                    await aiofiles.os.remove(data_path)
                    logger.info("local_object_delete_success", bucket=bucket, key=key)
                else:
                    # Deleting a missing object succeeds, as on S3.
                    logger.warning("local_object_delete_not_found", bucket=bucket, key=key)
                if meta_path.exists():
                    await aiofiles.os.remove(meta_path)
            except OSError as exc:
                raise StoreError(
                    f"Delete failed for {bucket}/{key}: {exc}",
                    {"bucket": bucket, "key": key},
                    code=ErrorCode.STORAGE_DELETE_FAILED,
                ) from exc

        return StoreResult(bucket=bucket, key=key, action="delete")

    async def close(self) -> None:
        return None

    def get_local_path(self, bucket: str, key: str) -> Path:
        """Absolute filesystem path of an object's payload."""
        return self._paths(bucket, key)[0]
