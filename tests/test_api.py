"""
HTTP API tests for media-store.

Runs the FastAPI app in-process over the tmp_path backed media provider.
"""

import pytest

from tests.conftest import TEST_BUCKET


@pytest.mark.integration
@pytest.mark.asyncio
async def test_health_check(async_client):
    response = await async_client.get("/api/v1/health/")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"]


@pytest.mark.integration
@pytest.mark.asyncio
async def test_upload_and_download(async_client, sample_image_bytes):
    response = await async_client.put(
        "/api/v1/media/media/2024/a.jpg",
        files={"file": ("a.jpg", sample_image_bytes, "image/jpeg")},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["bucket"] == TEST_BUCKET
    assert body["key"] == "media/2024/a.jpg"
    assert body["references"] == 1

    download = await async_client.get("/api/v1/media/media/2024/a.jpg")
    assert download.status_code == 200
    assert download.content == sample_image_bytes
    assert download.headers["content-type"] == "image/jpeg"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_head_reports_existence(async_client, sample_image_bytes):
    missing = await async_client.head("/api/v1/media/media/a.jpg")
    assert missing.status_code == 404

    await async_client.put("/api/v1/media/media/a.jpg", files={"file": ("a.jpg", sample_image_bytes, "image/jpeg")})

    present = await async_client.head("/api/v1/media/media/a.jpg")
    assert present.status_code == 200


@pytest.mark.integration
@pytest.mark.asyncio
async def test_reference_lifecycle_over_http(async_client, sample_image_bytes):
    await async_client.put("/api/v1/media/media/a.jpg", files={"file": ("a.jpg", sample_image_bytes, "image/jpeg")})

    added = await async_client.post("/api/v1/references/media/a.jpg")
    assert added.status_code == 200
    assert added.json()["references"] == 2

    stat = await async_client.get("/api/v1/stat/media/a.jpg")
    assert stat.status_code == 200
    assert stat.json()["metadata"]["references"] == "2"
    assert stat.json()["content_type"] == "image/jpeg"

    released = await async_client.delete("/api/v1/media/media/a.jpg")
    assert released.json() == {
        "bucket": TEST_BUCKET,
        "key": "media/a.jpg",
        "action": "copy",
        "etag": released.json()["etag"],
        "references": 1,
    }

    removed = await async_client.delete("/api/v1/media/media/a.jpg")
    assert removed.json()["action"] == "delete"
    assert removed.json()["references"] == 0

    gone = await async_client.get("/api/v1/media/media/a.jpg")
    assert gone.status_code == 404


@pytest.mark.integration
@pytest.mark.asyncio
async def test_missing_object_error_shape(async_client):
    response = await async_client.get("/api/v1/stat/media/missing.jpg")

    assert response.status_code == 404
    body = response.json()
    assert body["code"] == "STORAGE_404"
    assert "missing.jpg" in body["message"]
    assert body["details"]["key"] == "media/missing.jpg"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_invalid_bucket_query_is_rejected(async_client):
    response = await async_client.get("/api/v1/stat/media/a.jpg", params={"bucket": "Not_Valid"})

    assert response.status_code == 400
    assert response.json()["code"] == "VAL_001"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_bucket_query_overrides_bucket(async_client, sample_image_bytes):
    response = await async_client.put(
        "/api/v1/media/media/a.jpg",
        params={"bucket": "other-bucket"},
        files={"file": ("a.jpg", sample_image_bytes, "image/jpeg")},
    )
    assert response.json()["bucket"] == "other-bucket"

    assert (await async_client.head("/api/v1/media/media/a.jpg", params={"bucket": "other-bucket"})).status_code == 200
    assert (await async_client.head("/api/v1/media/media/a.jpg")).status_code == 404


@pytest.mark.integration
@pytest.mark.asyncio
async def test_trace_id_is_echoed(async_client):
    response = await async_client.get("/api/v1/health/", headers={"X-Trace-ID": "trace-abc"})

    assert response.headers["X-Trace-ID"] == "trace-abc"
    assert response.headers["X-Correlation-ID"] == "trace-abc"
