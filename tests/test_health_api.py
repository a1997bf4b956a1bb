"""Tests for health check API endpoints."""
import pytest
import redis
from fastapi.testclient import TestClient

from rcm.core.application import create_application


@pytest.mark.api
class TestHealthEndpoint:
    def test_health_check_success(self, client):
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "version": "1.0.0"}


@pytest.mark.api
@pytest.mark.integration
class TestDetailedHealthEndpoint:
    def test_all_components_healthy(self, client):
        response = client.get("/api/v1/health/detailed")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["components"]["database"]["status"] == "healthy"
        assert data["components"]["cache"]["status"] == "healthy"
        assert isinstance(data["timestamp"], str)

    def test_cache_down_is_degraded(self, client, mock_redis):
        mock_redis.ping.side_effect = redis.ConnectionError("Connection refused")
        try:
            data = client.get("/api/v1/health/detailed").json()
        finally:
            mock_redis.ping.side_effect = None

        assert data["status"] == "degraded"
        assert data["components"]["cache"]["status"] == "unhealthy"

    def test_without_cache(self, data_store, db_session, mocker):
        mocker.patch("rcm.core.application.is_cache_enabled", return_value=False)
        app = create_application(data_store=data_store)

        with TestClient(app) as test_client:
            data = test_client.get("/api/v1/health/detailed").json()

        assert data["components"]["cache"] == {"status": "disabled"}
        assert data["status"] == "healthy"
