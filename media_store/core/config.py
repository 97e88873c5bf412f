"""Application configuration using Pydantic Settings."""

import re
from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings
from typing import Optional
import os


def validate_bucket_name(v: Optional[str]) -> Optional[str]:
    """Validate an S3 bucket name against AWS naming conventions.

    Rules:
    - 3-63 characters long
    - Lowercase letters, numbers, hyphens, and dots only
    - Must start and end with a letter or number
    - No consecutive dots
    - Not formatted as an IP address

    Empty values are passed through so optional buckets can stay unset.
    """
    if not v:
        return v

    if not 3 <= len(v) <= 63:
        raise ValueError(f"S3 bucket name must be 3-63 characters long, got {len(v)}")

    if not re.match(r'^[a-z0-9][a-z0-9.-]*[a-z0-9]$', v):
        raise ValueError(
            f"S3 bucket name '{v}' must start/end with letter or number, "
            "and contain only lowercase letters, numbers, hyphens, and dots"
        )

    if '..' in v:
        raise ValueError("S3 bucket name cannot contain consecutive dots")

    if re.match(r'^\d+\.\d+\.\d+\.\d+$', v):
        raise ValueError("S3 bucket name cannot be formatted as an IP address")

    return v


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Service Identity
    SERVICE_NAME: str = "media-store"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development, staging, production

    # Logging Configuration
    LOG_LEVEL: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    LOG_JSON: bool = True    # JSON logs (prod) vs pretty console (dev)
    DEBUG: bool = False

    # Storage Backend Configuration
    STORAGE_BACKEND: str = "local"  # Options: "local" or "s3"
    STORAGE_PATH: str = os.path.join(os.getcwd(), "storage")

    # S3 Storage Configuration
    AWS_REGION: str = "eu-west-1"
    AWS_S3_BUCKET_NAME: str = "media-store-dev"  # Client-level default bucket
    AWS_ENDPOINT_URL: Optional[str] = None  # For MinIO or S3-compatible services
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[SecretStr] = None
    USE_IAM_ROLES: bool = False  # Ignore explicit keys, use the ambient credential chain

    # Media Configuration
    MEDIA_BUCKET: Optional[str] = None  # Takes priority over AWS_S3_BUCKET_NAME
    STREAM_CHUNK_SIZE: int = 8192
    MAX_UPLOAD_SIZE_MB: int = 50

    # Reference counting
    # Conditional copies guard the read-modify-write of the "references" field.
    REFERENCE_UPDATE_CONDITIONAL: bool = True
    REFERENCE_UPDATE_MAX_ATTEMPTS: int = 3

    @field_validator('AWS_S3_BUCKET_NAME', 'MEDIA_BUCKET')
    @classmethod
    def validate_s3_bucket_name(cls, v: Optional[str]) -> Optional[str]:
        """Validate bucket names follow AWS naming conventions."""
        return validate_bucket_name(v)

    @field_validator('AWS_ENDPOINT_URL')
    @classmethod
    def validate_endpoint_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate AWS endpoint URL format if provided."""
        if v is None or v == "":
            return None

        if not re.match(r'^https?://.+', v):
            raise ValueError(
                f"AWS_ENDPOINT_URL must start with http:// or https://, got '{v}'"
            )

        return v

    @field_validator('STREAM_CHUNK_SIZE', 'REFERENCE_UPDATE_MAX_ATTEMPTS', 'MAX_UPLOAD_SIZE_MB')
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Value must be positive, got {v}")
        return v

    @model_validator(mode='after')
    def validate_s3_configuration(self):
        """Ensure S3 backend has required configuration."""
        if self.STORAGE_BACKEND not in ("local", "s3"):
            raise ValueError(
                f"STORAGE_BACKEND must be 'local' or 's3', got '{self.STORAGE_BACKEND}'"
            )
        if self.STORAGE_BACKEND == "s3" and not self.AWS_REGION:
            raise ValueError("AWS_REGION must be set when STORAGE_BACKEND=s3")
        return self

    @property
    def default_bucket(self) -> Optional[str]:
        """Bucket used when a call does not override it.

        The media bucket wins over the client-level default bucket.
        """
        return self.MEDIA_BUCKET or self.AWS_S3_BUCKET_NAME or None

    @property
    def is_debug_mode(self) -> bool:
        """Check if application is in debug mode."""
        return self.DEBUG or self.LOG_LEVEL.upper() == "DEBUG"

    @property
    def use_json_logs(self) -> bool:
        """Determine if JSON logging should be used.

        In production, always use JSON logs.
        In development, allow override via LOG_JSON setting.
        """
        if self.ENVIRONMENT == "production":
            return True
        if self.DEBUG:
            return self.LOG_JSON
        return True

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
