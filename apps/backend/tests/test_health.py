"""Tests for health check endpoints."""

from __future__ import annotations

from fastapi.testclient import TestClient

from main import app


class TestHealthCheck:
    """Tests for basic health check endpoint."""

    def test_health_check_returns_success(self) -> None:
        """Test basic health check returns healthy status."""
        client = TestClient(app)
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["data"]["status"] == "healthy"
        assert "CVStream" in data["data"]["message"]
        assert data["message"] == "Health check successful"

    def test_health_check_needs_no_token(self) -> None:
        """Health is public; analysis routes are not."""
        client = TestClient(app)

        assert client.get("/api/v1/health").status_code == 200
        assert client.get("/api/v1/analysis/sessions/recoverable").status_code == 401

    def test_health_check_carries_correlation_id(self) -> None:
        client = TestClient(app)
        response = client.get("/api/v1/health", headers={"X-Correlation-ID": "cid-123"})

        assert response.headers["X-Correlation-ID"] == "cid-123"
