"""
Tests for health check endpoints.
"""

from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from catchup.main import app

client = TestClient(app)

ALL_TABLES = {"suggestion_batches": True, "suggestions": True, "suggestion_contacts": True}


def _healthy_pool():
    return patch(
        "catchup.routes.health.db_pool.health_check",
        new=AsyncMock(return_value={"healthy": True, "pool_stats": {"pool_size": 3}}),
    )


def test_healthz_endpoint():
    """Test the basic health check endpoint."""
    response = client.get("/healthz")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["service"] == "catchup-engine"


def test_readyz_endpoint_all_services_healthy():
    """Test readiness endpoint when pool, schema and configuration are healthy."""
    with (
        _healthy_pool(),
        patch("catchup.routes.health.fetch_one", new=AsyncMock(return_value=ALL_TABLES)),
        patch("catchup.routes.health.settings.JWT_SECRET", "test-secret"),
    ):
        response = client.get("/readyz")

    assert response.status_code == 200
    data = response.json()
    assert data["overall_ok"] is True
    assert data["checks"]["database"]["ok"] is True
    assert data["checks"]["database"]["pool_stats"] == {"pool_size": 3}
    assert data["checks"]["schema"] == {"ok": True, "missing_tables": None}
    assert data["checks"]["configuration"]["ok"] is True


def test_readyz_endpoint_pool_not_initialized():
    """The pool is never opened without the lifespan, so readiness fails."""
    with patch("catchup.routes.health.settings.JWT_SECRET", "test-secret"):
        response = client.get("/readyz")

    assert response.status_code == 200
    data = response.json()
    assert data["overall_ok"] is False
    assert data["checks"]["database"]["ok"] is False
    assert data["checks"]["database"]["error"] == "Pool not initialized"
    assert "schema" not in data["checks"]


def test_readyz_endpoint_missing_tables():
    with (
        _healthy_pool(),
        patch(
            "catchup.routes.health.fetch_one",
            new=AsyncMock(return_value={**ALL_TABLES, "suggestion_batches": False}),
        ),
        patch("catchup.routes.health.settings.JWT_SECRET", "test-secret"),
    ):
        response = client.get("/readyz")

    data = response.json()
    assert data["overall_ok"] is False
    assert data["checks"]["schema"]["missing_tables"] == ["suggestion_batches"]


def test_readyz_endpoint_missing_jwt_secret():
    """Test readiness endpoint when JWT secret is missing."""
    with (
        _healthy_pool(),
        patch("catchup.routes.health.fetch_one", new=AsyncMock(return_value=ALL_TABLES)),
        patch("catchup.routes.health.settings.JWT_SECRET", None),
    ):
        response = client.get("/readyz")

    data = response.json()
    assert data["overall_ok"] is False
    assert data["checks"]["configuration"]["ok"] is False
    assert "JWT_SECRET not set" in data["checks"]["configuration"]["issues"]


def test_readyz_endpoint_database_error():
    with (
        patch(
            "catchup.routes.health.db_pool.health_check",
            new=AsyncMock(side_effect=RuntimeError("boom")),
        ),
        patch("catchup.routes.health.settings.JWT_SECRET", "test-secret"),
    ):
        response = client.get("/readyz")

    data = response.json()
    assert data["overall_ok"] is False
    assert data["checks"]["database"]["error"] == "RuntimeError: boom"
