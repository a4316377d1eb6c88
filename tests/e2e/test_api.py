import pytest
from httpx import AsyncClient

from tests.factories import make_image

MB = 1024 * 1024


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_root(client: AsyncClient):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json()["api_v1"] == "/api/v1"


@pytest.mark.asyncio
async def test_ready_follows_model_state(client: AsyncClient):
    response = await client.get("/ready")
    assert response.status_code == 503
    assert response.json()["model_status"]["state"] == "uninitialized"

    await client.post("/api/v1/moderation/warmup")

    response = await client.get("/ready")
    assert response.status_code == 200
    assert response.json()["ready"] is True


# =============================================================================
# Audit Trail
# =============================================================================

@pytest.mark.asyncio
async def test_audit_logs_newest_first(client: AsyncClient, service, fake_session):
    fake_session.confidence = 0.9
    await service.detect(make_image("PNG"), "first.png", user_id="u1", file_size=1024)
    fake_session.confidence = 0.1
    await service.detect(make_image("JPEG"), "second.jpg", user_id="u2", file_size=2048)

    response = await client.get("/api/v1/moderation/audit-logs")

    assert response.status_code == 200
    data = response.json()
    assert data["count"] == 2
    first, second = data["records"]
    assert first["file_name"] == "second.jpg"
    assert first["is_nsfw"] is False
    assert second["file_name"] == "first.png"
    assert second["is_nsfw"] is True
    assert second["dimensions"] == {"width": 64, "height": 48}
    assert second["error"] is None


@pytest.mark.asyncio
async def test_audit_logs_limit(client: AsyncClient, service):
    for i in range(5):
        await service.detect(make_image("PNG"), f"f{i}.png")

    response = await client.get("/api/v1/moderation/audit-logs", params={"limit": 2})
    assert [r["file_name"] for r in response.json()["records"]] == ["f4.png", "f3.png"]

    response = await client.get("/api/v1/moderation/audit-logs", params={"limit": 0})
    assert response.json() == {"records": [], "count": 0}


@pytest.mark.asyncio
async def test_audit_logs_limit_validation(client: AsyncClient):
    response = await client.get("/api/v1/moderation/audit-logs", params={"limit": -1})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_failed_detection_is_audited_with_error(client: AsyncClient, service):
    await service.detect(make_image("PNG"), "huge.png", file_size=80 * MB)

    record = (await client.get("/api/v1/moderation/audit-logs")).json()["records"][0]

    assert record["is_nsfw"] is True
    assert record["confidence"] == 1.0
    assert record["file_size"] == 80 * MB
    assert "File size exceeds limit" in record["error"]


@pytest.mark.asyncio
async def test_clear_audit_logs(client: AsyncClient, service):
    await service.detect(make_image("PNG"), "a.png")

    response = await client.delete("/api/v1/moderation/audit-logs")
    assert response.status_code == 200
    assert response.json()["success"] is True

    response = await client.get("/api/v1/moderation/stats")
    assert response.json()["total_checks"] == 0


@pytest.mark.asyncio
async def test_stats(client: AsyncClient, service, fake_session):
    fake_session.confidence = 0.95
    for _ in range(3):
        await service.detect(make_image("PNG"), "bad.png")
    fake_session.confidence = 0.05
    await service.detect(make_image("PNG"), "good.png")

    response = await client.get("/api/v1/moderation/stats")

    assert response.status_code == 200
    assert response.json() == {
        "total_checks": 4,
        "blocked_count": 3,
        "allowed_count": 1,
        "block_rate_percent": 75.0,
    }


# =============================================================================
# Engine
# =============================================================================

@pytest.mark.asyncio
async def test_warmup_and_engine_health(client: AsyncClient, session_factory):
    response = await client.get("/api/v1/moderation/health")
    assert response.json()["status"] == "warming_up"
    assert response.json()["model_ready"] is False

    response = await client.post("/api/v1/moderation/warmup")
    assert response.status_code == 200
    assert response.json()["success"] is True

    response = await client.get("/api/v1/moderation/health")
    data = response.json()
    assert data["status"] == "healthy"
    assert data["details"]["init_attempts"] == 1
    assert session_factory.calls == 1


@pytest.mark.asyncio
async def test_warmup_failure_returns_503(client: AsyncClient, downloader):
    downloader.error = OSError("no space left on device")

    response = await client.post("/api/v1/moderation/warmup")

    assert response.status_code == 503
    data = response.json()
    assert data["stage"] == "model_init"
    assert "no space left on device" in data["error"]

    health = (await client.get("/api/v1/moderation/health")).json()
    assert health["details"]["state"] == "failed"
    assert health["details"]["last_error"] == data["error"]


@pytest.mark.asyncio
async def test_thresholds(client: AsyncClient):
    response = await client.get("/api/v1/moderation/thresholds")
    assert response.status_code == 200
    data = response.json()
    assert data["nsfw_threshold"] == 0.7
    assert data["uncertain_threshold"] == 0.4
    assert data["max_image_size_mb"] == 50
    assert data["max_image_dimension"] == 4096


@pytest.mark.asyncio
async def test_metrics_endpoint(client: AsyncClient, service):
    await service.detect(make_image("PNG"), "a.png")

    response = await client.get("/api/v1/metrics")

    assert response.status_code == 200
    assert "nsfw_detections_total" in response.text
    assert "nsfw_audit_records_total" in response.text
