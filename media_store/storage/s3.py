"""AWS S3 object store client."""

import asyncio
from contextlib import AsyncExitStack
from datetime import datetime
from typing import Any, Dict, Optional

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from media_store.core.config import Settings
from media_store.core.errors import (
    ErrorCode,
    ObjectNotFoundError,
    PreconditionFailedError,
    ServiceError,
    StoreError,
)
from media_store.core.logging_config import get_logger
from media_store.storage.protocol import ObjectBody, ObjectHead, StoreResult, StreamHandle, WritePayload


logger = get_logger(__name__)

_NOT_FOUND_CODES = {"NoSuchKey", "NoSuchBucket", "NotFound", "404"}
_PRECONDITION_CODES = {"PreconditionFailed", "412"}
_ACCESS_DENIED_CODES = {"AccessDenied", "Forbidden", "403"}


def build_s3_client_kwargs(settings: Settings) -> Dict[str, Any]:
    """Translate settings into ``session.client('s3', ...)`` keyword arguments.

    With ``USE_IAM_ROLES`` the access key pair is left out entirely so that
    botocore falls back to its ambient credential chain (environment,
    instance profile, IRSA). Unset keys are left out as well; they are never
    passed as empty strings.
    """
    kwargs: Dict[str, Any] = {"region_name": settings.AWS_REGION}
    if settings.AWS_ENDPOINT_URL:
        kwargs["endpoint_url"] = settings.AWS_ENDPOINT_URL

    if not settings.USE_IAM_ROLES:
        secret = settings.AWS_SECRET_ACCESS_KEY.get_secret_value() if settings.AWS_SECRET_ACCESS_KEY else None
        if settings.AWS_ACCESS_KEY_ID:
            kwargs["aws_access_key_id"] = settings.AWS_ACCESS_KEY_ID
        if secret:
            kwargs["aws_secret_access_key"] = secret

    return kwargs


def _strip_etag(etag: Optional[str]) -> Optional[str]:
    return etag.strip('"') if etag else etag


class S3ObjectStoreClient:
    """Object store client for AWS S3 and S3-compatible services (MinIO).

    Holds one aioboto3 client for its whole lifetime. The client is opened on
    first use and must be released with ``close()``; streamed reads handed out
    by ``get_object`` stay readable until then.
    """

    def __init__(self, client_kwargs: Dict[str, Any], chunk_size: int = 8192):
        self.session = aioboto3.Session()
        self.client_kwargs = client_kwargs
        self.chunk_size = chunk_size
        self._exit_stack: Optional[AsyncExitStack] = None
        self._client = None
        self._lock = asyncio.Lock()

        logger.info(
            "s3_object_store_initialized",
            region=client_kwargs.get("region_name"),
            endpoint_url=client_kwargs.get("endpoint_url"),
            explicit_credentials="aws_access_key_id" in client_kwargs,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3ObjectStoreClient":
        return cls(build_s3_client_kwargs(settings), chunk_size=settings.STREAM_CHUNK_SIZE)

    async def _get_s3_client(self):
        """Return the shared S3 client, opening it on first use."""
        if self._client is not None:
            return self._client
        async with self._lock:
            if self._client is None:
                stack = AsyncExitStack()
                self._client = await stack.enter_async_context(
                    self.session.client("s3", **self.client_kwargs)
                )
                self._exit_stack = stack
        return self._client

    async def close(self) -> None:
        if self._exit_stack is not None:
            await self._exit_stack.aclose()
            logger.info("s3_object_store_closed")
        self._exit_stack = None
        self._client = None

    def _handle_s3_error(self, exc: Exception, operation: str, bucket: str, key: str) -> ServiceError:
        """Translate a botocore failure into a media store error.

        Args:
            exc: Original exception
            operation: Operation being performed (e.g. 'head', 'copy')
            bucket: Target bucket
            key: Object key

        Returns:
            ServiceError: Translated error, to be raised from ``exc``
        """
        details: Dict[str, Any] = {"operation": operation, "bucket": bucket, "key": key}

        if isinstance(exc, ClientError):
            error = exc.response.get("Error", {})
            error_code = str(error.get("Code", "Unknown"))
            details.update({
                "error_code": error_code,
                "error_message": error.get("Message", str(exc)),
                "http_status": exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode"),
            })

            if error_code in _NOT_FOUND_CODES:
                return ObjectNotFoundError(f"Object not found in S3: {bucket}/{key}", details)
            if error_code in _PRECONDITION_CODES:
                return PreconditionFailedError(
                    f"Precondition failed for {operation} on {bucket}/{key}", details
                )
            if error_code in _ACCESS_DENIED_CODES:
                return StoreError(
                    f"Access denied to S3 bucket '{bucket}'. Check AWS credentials and IAM permissions.",
                    details,
                    code=ErrorCode.STORAGE_ACCESS_DENIED,
                    http_status=403,
                )
        elif isinstance(exc, BotoCoreError):
            details["botocore_error"] = type(exc).__name__

        codes = {
            "put": ErrorCode.STORAGE_WRITE_FAILED,
            "copy": ErrorCode.STORAGE_COPY_FAILED,
            "delete": ErrorCode.STORAGE_DELETE_FAILED,
            "head": ErrorCode.STORAGE_HEAD_FAILED,
        }
        return StoreError(
            f"S3 {operation} failed: {exc}",
            details,
            code=codes.get(operation, ErrorCode.STORAGE_READ_FAILED),
        )

    def _fail(self, exc: Exception, operation: str, bucket: str, key: str) -> ServiceError:
        logger.error(
            f"s3_object_{operation}_failed",
            bucket=bucket,
            key=key,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return self._handle_s3_error(exc, operation, bucket, key)

    async def head_object(self, bucket: str, key: str) -> ObjectHead:
        logger.debug("s3_object_head_started", bucket=bucket, key=key)
        try:
            s3 = await self._get_s3_client()
            response = await s3.head_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise self._fail(exc, "head", bucket, key) from exc

        return ObjectHead(
            bucket=bucket,
            key=key,
            metadata=dict(response.get("Metadata") or {}),
            etag=_strip_etag(response.get("ETag")),
            last_modified=response.get("LastModified"),
            content_length=response.get("ContentLength"),
            content_type=response.get("ContentType"),
            raw=response,
        )

    async def get_object(self, bucket: str, key: str) -> ObjectBody:
        logger.debug("s3_object_get_started", bucket=bucket, key=key)
        try:
            s3 = await self._get_s3_client()
            response = await s3.get_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise self._fail(exc, "get", bucket, key) from exc

        body = response["Body"]
        logger.info(
            "s3_object_get_success",
            bucket=bucket,
            key=key,
            content_length=response.get("ContentLength"),
        )
        return StreamHandle(
            body.iter_chunks(self.chunk_size),
            close=body.close,
            content_length=response.get("ContentLength"),
            content_type=response.get("ContentType"),
        )

    async def put_object(
        self,
        bucket: str,
        key: str,
        body: WritePayload,
        metadata: Dict[str, str],
        content_type: Optional[str] = None,
    ) -> StoreResult:
        logger.debug("s3_object_put_started", bucket=bucket, key=key, metadata=metadata)
        try:
            s3 = await self._get_s3_client()
            if isinstance(body, (bytes, bytearray, str)):
                params: Dict[str, Any] = {"Bucket": bucket, "Key": key, "Body": body, "Metadata": metadata}
                if content_type:
                    params["ContentType"] = content_type
                response = await s3.put_object(**params)
            else:
                # Readable file objects go through the managed transfer, which
                # accepts both sync and async read().
                if hasattr(body, "seek"):
                    body.seek(0)
                extra_args: Dict[str, Any] = {"Metadata": metadata}
                if content_type:
                    extra_args["ContentType"] = content_type
                await s3.upload_fileobj(body, bucket, key, ExtraArgs=extra_args)
                response = {}
        except (ClientError, BotoCoreError) as exc:
            raise self._fail(exc, "put", bucket, key) from exc

        logger.info("s3_object_put_success", bucket=bucket, key=key)
        return StoreResult(
            bucket=bucket,
            key=key,
            action="put",
            etag=_strip_etag(response.get("ETag")),
            raw=response,
        )

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
        params: Dict[str, Any] = {
            "Bucket": bucket,
            "Key": dest_key,
            # The dict form lets botocore handle URL-encoding of the source key.
            "CopySource": {"Bucket": bucket, "Key": source_key},
            "Metadata": metadata,
            "MetadataDirective": "REPLACE" if replace_metadata else "COPY",
        }
        # REPLACE drops system metadata too, so the content type is carried over.
        if replace_metadata and content_type:
            params["ContentType"] = content_type
        if if_unmodified_since:
            params["CopySourceIfUnmodifiedSince"] = if_unmodified_since

        logger.debug(
            "s3_object_copy_started",
            bucket=bucket,
            source_key=source_key,
            dest_key=dest_key,
            metadata=metadata,
            conditional=if_unmodified_since is not None,
        )
        try:
            s3 = await self._get_s3_client()
            response = await s3.copy_object(**params)
        except (ClientError, BotoCoreError) as exc:
            raise self._fail(exc, "copy", bucket, source_key) from exc

        logger.info("s3_object_copy_success", bucket=bucket, source_key=source_key, dest_key=dest_key)
        return StoreResult(
            bucket=bucket,
            key=dest_key,
            action="copy",
            etag=_strip_etag(response.get("CopyObjectResult", {}).get("ETag")),
            raw=response,
        )

    async def delete_object(self, bucket: str, key: str) -> StoreResult:
        logger.debug("s3_object_delete_started", bucket=bucket, key=key)
        try:
            s3 = await self._get_s3_client()
            response = await s3.delete_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise self._fail(exc, "delete", bucket, key) from exc

        logger.info("s3_object_delete_success", bucket=bucket, key=key)
        return StoreResult(bucket=bucket, key=key, action="delete", raw=response)
