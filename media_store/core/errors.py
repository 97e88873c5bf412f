"""
Media Store Error Handling

Standardized error codes and exceptions shared by the storage clients, the
reference-counting media provider and the HTTP layer.

Store clients translate driver errors into these types exactly once; callers
above them see the same exception unmodified.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Standardized error codes for the entire application."""

    # Validation errors (VAL_xxx)
    VAL_INVALID_OPTIONS = "VAL_001"
    VAL_INVALID_PATH = "VAL_002"
    VAL_UPLOAD_TOO_LARGE = "VAL_003"

    # Configuration errors (CONFIG_xxx)
    CONFIG_INVALID = "CONFIG_001"
    CONFIG_NO_BUCKET = "CONFIG_002"

    # Storage errors (STORAGE_xxx)
    STORAGE_WRITE_FAILED = "STORAGE_001"
    STORAGE_READ_FAILED = "STORAGE_002"
    STORAGE_DELETE_FAILED = "STORAGE_003"
    STORAGE_COPY_FAILED = "STORAGE_004"
    STORAGE_HEAD_FAILED = "STORAGE_005"
    STORAGE_ACCESS_DENIED = "STORAGE_403"
    STORAGE_NOT_FOUND = "STORAGE_404"
    STORAGE_PRECONDITION_FAILED = "STORAGE_412"

    # Reference counting errors (REF_xxx)
    REF_INVALID_COUNT = "REF_001"
    REF_CONFLICT = "REF_002"

    # Operation errors (OP_xxx)
    OP_UNSUPPORTED = "OP_001"


class ServiceError(Exception):
    """
    Base class for media store errors.

    Carries a machine-readable code, a human message and a details mapping.
    The HTTP layer renders it as:

    {
        "code": "STORAGE_404",
        "message": "Object not found: media-bucket/media/2024/a.jpg",
        "details": {"bucket": "media-bucket", "key": "media/2024/a.jpg"}
    }
    """

    http_status: int = 500

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        http_status: Optional[int] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}
        if http_status is not None:
            self.http_status = http_status

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class InvalidArgumentError(ServiceError):
    """Malformed arguments; raised before any store request is issued."""

    http_status = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None,
                 code: ErrorCode = ErrorCode.VAL_INVALID_OPTIONS):
        super().__init__(code, message, details)


class ConfigurationError(ServiceError):
    """Settings or the store client could not be constructed."""

    http_status = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None,
                 code: ErrorCode = ErrorCode.CONFIG_INVALID):
        super().__init__(code, message, details)


class ObjectNotFoundError(ServiceError):
    """No object (or no bucket) at the requested location."""

    http_status = 404

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.STORAGE_NOT_FOUND, message, details)


class StoreError(ServiceError):
    """Any other failure reported by the object store."""

    http_status = 502

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None,
                 code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
                 http_status: Optional[int] = None):
        super().__init__(code, message, details, http_status)


class PreconditionFailedError(StoreError):
    """A conditional request lost against a concurrent modification."""

    http_status = 412

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code=ErrorCode.STORAGE_PRECONDITION_FAILED)


class ReferenceCountError(ServiceError):
    """The references metadata holds a value outside the decimal encoding."""

    http_status = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.REF_INVALID_COUNT, message, details)


class ReferenceConflictError(ServiceError):
    """Concurrent reference updates kept invalidating the conditional copy."""

    http_status = 409

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.REF_CONFLICT, message, details)


class UnsupportedOperationError(ServiceError):
    """The operation is part of the provider interface but not implemented."""

    http_status = 501

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.OP_UNSUPPORTED, message, details)
