"""
Configuration tests for media-store.

Tests the type-safe Pydantic configuration system.
"""

import pytest
from pydantic import ValidationError

from media_store.core.config import Settings
from media_store.core.errors import ConfigurationError
from media_store.services import MediaOptions
from media_store.storage import LocalObjectStoreClient, get_object_store


# ============================================================================
# Settings validation
# ============================================================================

@pytest.mark.unit
def test_settings_defaults():
    settings = Settings()

    assert settings.STORAGE_BACKEND == "local"
    assert settings.USE_IAM_ROLES is False
    assert settings.REFERENCE_UPDATE_CONDITIONAL is True
    assert settings.REFERENCE_UPDATE_MAX_ATTEMPTS == 3


@pytest.mark.unit
@pytest.mark.parametrize("name", ["ab", "Media_Bucket", "-media", "media..bucket", "192.168.1.1"])
def test_settings_rejects_invalid_bucket_names(name):
    with pytest.raises(ValidationError):
        Settings(MEDIA_BUCKET=name)


@pytest.mark.unit
def test_settings_rejects_unknown_backend():
    with pytest.raises(ValidationError) as exc_info:
        Settings(STORAGE_BACKEND="ftp")

    assert "STORAGE_BACKEND" in str(exc_info.value)


@pytest.mark.unit
def test_settings_rejects_bad_endpoint_url():
    with pytest.raises(ValidationError):
        Settings(AWS_ENDPOINT_URL="minio:9000")


@pytest.mark.unit
def test_settings_empty_endpoint_url_is_none():
    assert Settings(AWS_ENDPOINT_URL="").AWS_ENDPOINT_URL is None


@pytest.mark.unit
@pytest.mark.parametrize("field", ["STREAM_CHUNK_SIZE", "REFERENCE_UPDATE_MAX_ATTEMPTS", "MAX_UPLOAD_SIZE_MB"])
def test_settings_rejects_non_positive_values(field):
    with pytest.raises(ValidationError) as exc_info:
        Settings(**{field: 0})

    assert "positive" in str(exc_info.value).lower()


@pytest.mark.unit
def test_default_bucket_prefers_media_bucket():
    assert Settings(MEDIA_BUCKET="cms-media", AWS_S3_BUCKET_NAME="account-default").default_bucket == "cms-media"
    assert Settings(MEDIA_BUCKET=None, AWS_S3_BUCKET_NAME="account-default").default_bucket == "account-default"
    assert Settings(MEDIA_BUCKET=None, AWS_S3_BUCKET_NAME="").default_bucket is None


@pytest.mark.unit
def test_secret_key_is_masked():
    settings = Settings(AWS_SECRET_ACCESS_KEY="top-secret")

    assert "top-secret" not in repr(settings)
    assert settings.AWS_SECRET_ACCESS_KEY.get_secret_value() == "top-secret"


# ============================================================================
# Options
# ============================================================================

@pytest.mark.unit
def test_media_options_ignore_unknown_fields():
    options = MediaOptions.model_validate({"bucket": "cms-media", "cache_control": "no-cache"})

    assert options.bucket == "cms-media"
    assert options.content_type is None


@pytest.mark.unit
def test_media_options_validate_bucket():
    with pytest.raises(ValidationError):
        MediaOptions(bucket="Bad Bucket")


# ============================================================================
# Store factory
# ============================================================================

@pytest.mark.unit
def test_object_store_factory_local(tmp_path):
    client = get_object_store(Settings(STORAGE_BACKEND="local", STORAGE_PATH=str(tmp_path)))

    assert isinstance(client, LocalObjectStoreClient)


@pytest.mark.unit
def test_object_store_factory_s3():
    from media_store.storage.s3 import S3ObjectStoreClient

    client = get_object_store(Settings(STORAGE_BACKEND="s3", USE_IAM_ROLES=True))

    assert isinstance(client, S3ObjectStoreClient)
    assert "aws_access_key_id" not in client.client_kwargs


@pytest.mark.unit
def test_object_store_factory_unknown_backend():
    settings = Settings().model_copy(update={"STORAGE_BACKEND": "ftp"})

    with pytest.raises(ConfigurationError):
        get_object_store(settings)
