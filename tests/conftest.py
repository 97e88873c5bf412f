"""
Pytest configuration and shared fixtures for media-store tests.

This module provides:
- Settings fixtures with temporary storage paths
- Local object store and media provider fixtures
- AsyncMock store clients for call-count assertions
- HTTP client fixtures
"""

import itertools
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from media_store.core.config import Settings
from media_store.services import ReferenceCountedObjectStore
from media_store.storage import LocalObjectStoreClient, ObjectHead, StoreResult


TEST_BUCKET = "media-test"


# ============================================================================
# Settings fixtures
# ============================================================================

@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Isolated settings: local backend rooted in tmp_path, fixed media bucket."""
    return Settings(
        STORAGE_BACKEND="local",
        STORAGE_PATH=str(tmp_path / "storage"),
        MEDIA_BUCKET=TEST_BUCKET,
        AWS_S3_BUCKET_NAME="client-default",
        REFERENCE_UPDATE_CONDITIONAL=True,
        REFERENCE_UPDATE_MAX_ATTEMPTS=3,
    )


# ============================================================================
# Storage fixtures
# ============================================================================

@pytest.fixture
def local_client(test_settings: Settings) -> LocalObjectStoreClient:
    """Local object store in a temporary directory."""
    return LocalObjectStoreClient(test_settings.STORAGE_PATH, chunk_size=4)


@pytest.fixture
def ticking_clock(local_client: LocalObjectStoreClient, monkeypatch) -> None:
    """Local store clock that moves forward one second per write."""
    start = datetime(2024, 5, 1, tzinfo=timezone.utc)
    ticks = itertools.count()
    monkeypatch.setattr(local_client, "_now", lambda: start + timedelta(seconds=next(ticks)))


@pytest.fixture
def frozen_clock(local_client: LocalObjectStoreClient, monkeypatch) -> None:
    """Local store clock stuck in a single second, as for writes landing in the same second."""
    now = datetime(2024, 5, 1, tzinfo=timezone.utc)
    monkeypatch.setattr(local_client, "_now", lambda: now)


@pytest.fixture
def media_store(local_client: LocalObjectStoreClient, test_settings: Settings) -> ReferenceCountedObjectStore:
    """Media provider over the temporary local object store."""
    return ReferenceCountedObjectStore(local_client, test_settings)


@pytest.fixture
def mock_client() -> AsyncMock:
    """Store client double with canned results.

    head_object reports an object with references "1"; mutating requests
    echo a StoreResult.
    """
    client = AsyncMock()
    client.head_object.return_value = ObjectHead(
        bucket=TEST_BUCKET,
        key="media/a.jpg",
        metadata={"references": "1"},
        etag="etag-1",
    )
    client.get_object.return_value = b"fake-image-data"
    client.put_object.return_value = StoreResult(bucket=TEST_BUCKET, key="media/a.jpg", action="put")
    client.copy_object.return_value = StoreResult(bucket=TEST_BUCKET, key="media/a.jpg", action="copy")
    client.delete_object.return_value = StoreResult(bucket=TEST_BUCKET, key="media/a.jpg", action="delete")
    return client


@pytest.fixture
def mock_media_store(mock_client: AsyncMock, test_settings: Settings) -> ReferenceCountedObjectStore:
    """Media provider over the AsyncMock store client."""
    return ReferenceCountedObjectStore(mock_client, test_settings)


def store_call_count(client: AsyncMock) -> int:
    """Total number of requests issued to a mocked store client."""
    return sum(
        getattr(client, name).await_count
        for name in ("head_object", "get_object", "put_object", "copy_object", "delete_object")
    )


# ============================================================================
# API Client fixtures
# ============================================================================

@pytest_asyncio.fixture
async def async_client(media_store: ReferenceCountedObjectStore) -> AsyncGenerator[AsyncClient, None]:
    """Asynchronous HTTP client bound to the app, backed by the tmp media store."""
    from media_store.main import app
    from media_store.api.dependencies import get_media_provider

    app.dependency_overrides[get_media_provider] = lambda: media_store

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ============================================================================
# Test data fixtures
# ============================================================================

@pytest.fixture
def sample_image_bytes() -> bytes:
    """Minimal valid JPEG image data (1x1 pixel, red)."""
    return bytes.fromhex(
        'ffd8ffe000104a46494600010100000100010000ffdb00430003020202020203'
        '020203030304060404040404080606050609080a0a090809090a0c0f0c0a0b'
        '0e0b09090d110d0e0f101011100a0c12131210130f101010ffc90011080001'
        '0001030122000211010311010fffc40015000101000000000000000000000000'
        '0000000001ffda000c03010002110311003f00bf800000ffd9'
    )
