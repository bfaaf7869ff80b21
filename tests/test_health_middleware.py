"""
Tests for health checks, metrics and the observability middleware.
"""
import pytest
from fastapi.testclient import TestClient

from conftest import master_headers
from secretgate.config import Settings
from secretgate.main import create_app


@pytest.fixture
def test_client(app):
    with TestClient(app) as client:
        yield client


def test_health_liveness(test_client):
    """Test liveness health check needs no credentials."""
    r = test_client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert data["service"] == "secretgate"
    assert data["version"] == "0.1.0"
    assert "timestamp" in data


def test_health_readiness(test_client):
    """Test readiness health check."""
    r = test_client.get("/health/ready")
    # Should be 200 (ready) or 503 (not ready)
    assert r.status_code in [200, 503]
    data = r.json()
    assert data["service"] == "secretgate"
    assert data["checks"]["database"]["status"] == "ok"
    assert data["checks"]["encryption_key"]["status"] == "ok"
    assert {"disk_space", "memory"} <= set(data["checks"])


def test_readiness_flags_insecure_key(tmp_path):
    """Test the built-in encryption key shows up as a warning."""
    settings = Settings(
        ENCRYPTION_KEY=None,
        DATA_DIR=str(tmp_path),
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'insecure.db'}",
        LOG_JSON=False,
    )
    with TestClient(create_app(settings)) as client:
        data = client.get("/health/ready").json()
    assert data["checks"]["encryption_key"]["status"] == "warning"


def test_metrics_endpoint(test_client):
    """Test Prometheus metrics endpoint needs no credentials."""
    test_client.post("/mcp", json={"method": "ping"})
    test_client.get("/v1/secrets", headers=master_headers())

    r = test_client.get("/metrics")
    assert r.status_code == 200
    content = r.text
    assert "http_requests_total" in content
    assert "http_request_duration_seconds" in content
    assert "app_up" in content
    assert 'secretgate_auth_decisions_total{outcome="unauthenticated"}' in content
    assert 'secretgate_auth_decisions_total{outcome="allowed"}' in content


def test_key_operation_metrics(test_client):
    test_client.post("/v1/security/generate-key", headers=master_headers())
    test_client.post("/v1/security/migrate", headers=master_headers())

    content = test_client.get("/metrics").text
    assert 'secretgate_key_operations_total{operation="generate",result="ok"}' in content
    assert 'secretgate_key_operations_total{operation="migrate",result="ok"}' in content


def test_correlation_id_in_response(test_client):
    """Test that correlation ID is added to response headers."""
    r = test_client.get("/health")
    assert "x-correlation-id" in r.headers


def test_correlation_id_propagation(test_client):
    """Test that provided correlation ID is propagated, also on rejections."""
    correlation_id = "test-correlation-id-123"
    r = test_client.get("/v1/secrets", headers={"x-correlation-id": correlation_id})
    assert r.status_code == 401
    assert r.headers["x-correlation-id"] == correlation_id


def test_unhandled_error_envelope(app):
    """Test exceptions escaping a route become a structured 500."""
    @app.get("/v1/boom")
    async def boom():
        raise RuntimeError("kaboom")

    with TestClient(app) as client:
        r = client.get("/v1/boom", headers={**master_headers(), "x-correlation-id": "cid-1"})

    assert r.status_code == 500
    data = r.json()
    assert data["error"] == "InternalServerError"
    assert data["correlation_id"] == "cid-1"
    assert data["path"] == "/v1/boom"
    assert "kaboom" not in data["message"]


def test_oversized_tool_payload_rejected(tmp_path):
    settings = Settings(
        ENCRYPTION_KEY="test-encryption-passphrase-42",
        DATA_DIR=str(tmp_path),
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'small.db'}",
        MAX_BODY_SIZE=64,
        LOG_JSON=False,
    )
    with TestClient(create_app(settings)) as client:
        r = client.post("/mcp", json={"method": "ping", "params": {"pad": "x" * 200}})

    assert r.status_code == 413
    assert r.json()["error"] == "PayloadTooLarge"
