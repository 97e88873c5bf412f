"""
Reference-Counted Media Provider

Stores media payloads in an object store and lets several logical media
records share one physical object. The number of sharers is kept in the
object's ``references`` metadata field:

- a fresh ``set`` writes ``references: "1"``
- ``add_references`` increments it
- ``delete`` decrements it, or removes the object when it is the last one

A missing field counts as ``"1"``, so objects written before reference
counting existed take part in the scheme unchanged. The store has no
metadata update primitive; counts are rewritten by copying the object onto
itself with a metadata REPLACE directive.

Concurrency: the count update is read (head) → compute → write (copy), and
it narrows the race rather than closing it. With
REFERENCE_UPDATE_CONDITIONAL enabled the copy carries the head's
last-modified time as an if-unmodified-since condition. If another writer
rewrote the object in a later second than the head observed, the copy fails
and the update is re-read and retried, up to REFERENCE_UPDATE_MAX_ATTEMPTS
times. The ETag is not usable as a guard: a self-copy leaves the payload,
and so the ETag, unchanged. Gaps that remain:

- last-modified has one-second resolution, so two updates landing within
  the same second can still both read the same count, and one is lost
- removing the last reference is an unconditional delete; a reference added
  between the head and the delete is lost with the object. Conditional
  DeleteObject (If-Match) would close this once every supported backend
  honours it

With the flag disabled, no condition is sent and any two overlapping updates
can lose one.
"""
import re
from typing import Any, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from media_store.core.config import Settings, validate_bucket_name
from media_store.core.errors import (
    ConfigurationError,
    ErrorCode,
    InvalidArgumentError,
    PreconditionFailedError,
    ReferenceConflictError,
    ReferenceCountError,
    StoreError,
    UnsupportedOperationError,
)
from media_store.core.logging_config import get_logger
from media_store.storage.protocol import (
    ObjectHead,
    ObjectStoreClient,
    StoreResult,
    StreamHandle,
    WritePayload,
    drain_body,
)

logger = get_logger(__name__)

REFERENCES_KEY = "references"

_REFERENCE_PATTERN = re.compile(r"[0-9]+")


class MediaOptions(BaseModel):
    """Per-call options.

    ``bucket`` overrides the configured bucket for a single call.
    ``content_type`` is stored with the object on writes.
    """

    model_config = ConfigDict(extra="ignore")

    bucket: Optional[str] = None
    content_type: Optional[str] = None

    @field_validator("bucket")
    @classmethod
    def validate_bucket(cls, v: Optional[str]) -> Optional[str]:
        return validate_bucket_name(v)


OptionsArg = Union[MediaOptions, Mapping[str, Any], None]


def normalize_media_path(media_path: Any) -> Any:
    """Turn a media path into an object store key.

    S3 keys should not start with "/", so the leading separator is removed:
    "/media/2024/a.jpg" becomes "media/2024/a.jpg". A run of separators is
    removed as a whole ("//a.jpg" becomes "a.jpg", not "/a.jpg"), so normalizing
    an already normalized key returns it unchanged. Non-string values are
    returned unchanged.
    """
    if isinstance(media_path, str) and media_path.startswith("/"):
        return media_path.lstrip("/")
    return media_path


def parse_reference_count(value: Optional[str]) -> int:
    """Decode the references metadata value.

    Absent (or empty) means a single implicit reference. Anything other than
    the decimal encoding of a positive integer is rejected.

    Raises:
        ReferenceCountError: If the value is not a valid count
    """
    if value is None or value == "":
        return 1
    if not isinstance(value, str) or not _REFERENCE_PATTERN.fullmatch(value):
        raise ReferenceCountError(
            f"Invalid references metadata value: {value!r}",
            {"references": repr(value)},
        )
    count = int(value)
    if count < 1:
        raise ReferenceCountError(
            f"References metadata must be positive, got {value!r}",
            {"references": value},
        )
    return count


class ReferenceCountedObjectStore:
    """
    Media provider over an object store with reference-counted deletion.

    Does NOT know about:
    - Which concrete store it talks to (any ObjectStoreClient)
    - HTTP status codes (raises ServiceError subclasses)

    Store errors propagate unmodified; only ``exists`` swallows them.
    """

    def __init__(self, client: ObjectStoreClient, settings: Settings):
        self.client = client
        self.settings = settings

    media_path_transform = staticmethod(normalize_media_path)

    def get_client(self) -> Tuple[ObjectStoreClient, Settings]:
        """Return the store client together with the settings it was built from."""
        return self.client, self.settings

    async def close(self) -> None:
        await self.client.close()

    # ------------------------------------------------------------------
    # Argument handling
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_options(options: OptionsArg) -> MediaOptions:
        if options is None:
            return MediaOptions()
        if isinstance(options, MediaOptions):
            return options
        if isinstance(options, Mapping):
            try:
                return MediaOptions.model_validate(dict(options))
            except ValidationError as exc:
                raise InvalidArgumentError(
                    "Invalid options",
                    {"errors": [e["msg"] for e in exc.errors()]},
                ) from exc
        raise InvalidArgumentError(
            "The options parameter must be a mapping or MediaOptions",
            {"options_type": type(options).__name__},
        )

    def _locate(self, media_path: Any, options: MediaOptions) -> Tuple[str, str]:
        """Resolve (bucket, key) for a call.

        Bucket priority: per-call override, media bucket, client default bucket.
        """
        key = normalize_media_path(media_path)
        if not isinstance(key, str) or not key:
            raise InvalidArgumentError(
                "Media path must be a non-empty string",
                {"media_path": repr(media_path)},
                code=ErrorCode.VAL_INVALID_PATH,
            )

        bucket = options.bucket or self.settings.default_bucket
        if not bucket:
            raise ConfigurationError(
                "No bucket configured for media storage",
                {"key": key},
                code=ErrorCode.CONFIG_NO_BUCKET,
            )
        return bucket, key

    # ------------------------------------------------------------------
    # Content I/O
    # ------------------------------------------------------------------

    async def get(self, media_path: str, options: OptionsArg = None) -> Union[bytes, str]:
        """Retrieve media content, fully materialized in memory.

        Args:
            media_path: Path of the media, e.g. "/media/2014/9/540a3ff0e30d-1409957872680.jpg"
            options: Optional per-call options (bucket override)

        Returns:
            The payload as bytes (or str, when the store hands back text)

        Raises:
            InvalidArgumentError: If options are malformed (no request issued)
            ObjectNotFoundError: If there is no object at the path
            StoreError: On any other store failure, including a failed drain
        """
        bucket, key = self._locate(media_path, self._parse_options(options))
        body = await self.client.get_object(bucket, key)
        data = await drain_body(body)

        logger.info("media_get_success", bucket=bucket, key=key, bytes_read=len(data))
        return data

    async def get_stream(self, media_path: str, options: OptionsArg = None) -> StreamHandle:
        """Retrieve media content as an open, undrained stream.

        The caller owns the returned handle and must close it.
        """
        bucket, key = self._locate(media_path, self._parse_options(options))
        body = await self.client.get_object(bucket, key)

        logger.debug("media_stream_opened", bucket=bucket, key=key)
        if isinstance(body, StreamHandle):
            return body
        data = body.encode("utf-8") if isinstance(body, str) else body
        return StreamHandle(_single_chunk(data), content_length=len(data))

    async def set(self, payload: WritePayload, media_path: str, options: OptionsArg = None) -> StoreResult:
        """Store media content as a new, singly-referenced object.

        Overwrites whatever was at the path; the reference count restarts at
        one rather than adding to an existing count.

        Args:
            payload: bytes, str, or a readable binary file object
            media_path: Path of the media
            options: Optional per-call options (bucket override, content type)

        Returns:
            StoreResult: The store's put result
        """
        parsed = self._parse_options(options)
        if payload is None:
            raise InvalidArgumentError("Payload must not be None")
        bucket, key = self._locate(media_path, parsed)

        result = await self.client.put_object(
            bucket,
            key,
            payload,
            {REFERENCES_KEY: "1"},
            content_type=parsed.content_type,
        )
        result.references = 1

        logger.info("media_set_success", bucket=bucket, key=key, references=1)
        return result

    async def set_stream(self, stream: WritePayload, media_path: str, options: OptionsArg = None) -> StoreResult:
        """Alias of ``set`` for streamed payloads."""
        return await self.set(stream, media_path, options)

    def create_write_stream(self, media_path: str):
        """Open a writable stream into the store. Not supported."""
        raise UnsupportedOperationError(
            "create_write_stream is not implemented",
            {"media_path": media_path},
        )

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    async def stat(self, media_path: str, options: OptionsArg = None) -> ObjectHead:
        """Return the store's metadata for the object, uninterpreted."""
        bucket, key = self._locate(media_path, self._parse_options(options))
        return await self.client.head_object(bucket, key)

    async def exists(self, media_path: str, options: OptionsArg = None) -> bool:
        """Whether an object exists at the path.

        Never raises: any failure, not-found or otherwise, answers False.
        Use ``stat`` to tell failure causes apart.
        """
        try:
            await self.stat(media_path, options)
        except Exception as exc:
            logger.debug(
                "media_exists_check_negative",
                media_path=media_path,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return False
        return True

    # ------------------------------------------------------------------
    # Reference counting
    # ------------------------------------------------------------------

    async def add_references(self, media_path: str, options: OptionsArg = None) -> StoreResult:
        """Record one more logical reference to the object at the path.

        Returns:
            StoreResult: The copy result, with ``references`` set to the new count

        Raises:
            ObjectNotFoundError: If there is no object at the path
            ReferenceCountError: If the stored count is not a valid encoding
            ReferenceConflictError: If conditional updates kept losing races
        """
        bucket, key = self._locate(media_path, self._parse_options(options))
        result = await self._update_references(bucket, key, 1)

        logger.info("media_reference_added", bucket=bucket, key=key, references=result.references)
        return result

    async def delete(self, media_path: str, options: OptionsArg = None) -> StoreResult:
        """Drop one logical reference; delete the object when it was the last.

        Returns:
            StoreResult: ``action="delete"`` with ``references=0`` when the
            object was removed, otherwise the copy result with the remaining
            count
        """
        bucket, key = self._locate(media_path, self._parse_options(options))
        result = await self._update_references(bucket, key, -1)

        if result.action == "delete":
            logger.info("media_object_deleted", bucket=bucket, key=key)
        else:
            logger.info("media_reference_released", bucket=bucket, key=key, references=result.references)
        return result

    async def _inspect(self, bucket: str, key: str) -> ObjectHead:
        head = await self.client.head_object(bucket, key)
        if head is None:
            raise StoreError(
                "No results returned",
                {"bucket": bucket, "key": key},
                code=ErrorCode.STORAGE_HEAD_FAILED,
            )
        return head

    async def _update_references(self, bucket: str, key: str, delta: int) -> StoreResult:
        conditional = self.settings.REFERENCE_UPDATE_CONDITIONAL
        attempts = self.settings.REFERENCE_UPDATE_MAX_ATTEMPTS if conditional else 1
        attempt = 0

        while True:
            attempt += 1
            head = await self._inspect(bucket, key)
            current = parse_reference_count(head.metadata.get(REFERENCES_KEY))

            if delta < 0 and current == 1:
                result = await self.client.delete_object(bucket, key)
                result.references = 0
                return result

            updated = current + delta
            metadata = dict(head.metadata)
            metadata[REFERENCES_KEY] = str(updated)

            try:
                result = await self.client.copy_object(
                    bucket,
                    key,
                    key,
                    metadata,
                    replace_metadata=True,
                    if_unmodified_since=head.last_modified if conditional else None,
                    content_type=head.content_type,
                )
            except PreconditionFailedError as exc:
                logger.warning(
                    "media_reference_update_conflict",
                    bucket=bucket,
                    key=key,
                    attempt=attempt,
                    max_attempts=attempts,
                )
                if attempt >= attempts:
                    raise ReferenceConflictError(
                        f"Reference count of {bucket}/{key} changed concurrently "
                        f"{attempts} time(s); giving up",
                        {"bucket": bucket, "key": key, "attempts": attempts},
                    ) from exc
                continue

            result.references = updated
            return result


async def _single_chunk(data: bytes):
    yield data
