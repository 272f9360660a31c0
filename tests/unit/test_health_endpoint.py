"""Unit tests for health check endpoints."""
import pytest
from unittest.mock import MagicMock, patch
from fastapi.testclient import TestClient

from similarity_service.core.config import settings
from similarity_service.main import app, run
from similarity_service.services.work_queue import QueueStatus


@pytest.mark.unit
@pytest.mark.api
class TestHealthEndpoints:
    """Test cases for health check endpoints."""

    @pytest.fixture
    def client(self):
        return TestClient(app)

    @pytest.fixture
    def services(self):
        container = MagicMock()
        container.work_queue.has_capacity.return_value = True
        container.work_queue.status.return_value = QueueStatus(
            pending=0, processing=0, available=1, remaining_capacity=100, max_queue_size=100
        )
        app.state.services = container
        yield container
        del app.state.services

    def test_root_endpoint(self, client):
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert "Document Similarity Service" in data["message"]
        assert "docs" in data
        assert "health" in data

    def test_health_check(self, client):
        response = client.get("/v1/health/")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data

    def test_liveness_check(self, client):
        response = client.get("/v1/health/live")

        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    def test_readiness_check(self, client, services):
        response = client.get("/v1/health/ready")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"
        assert data["queue"]["remaining_capacity"] == 100

    def test_readiness_when_queue_is_full(self, client, services):
        services.work_queue.has_capacity.return_value = False

        response = client.get("/v1/health/ready")

        assert response.json()["status"] == "saturated"

    def test_not_ready_before_startup(self, client):
        response = client.get("/v1/health/ready")
        assert response.status_code == 503

    def test_request_id_header(self, client):
        response = client.get("/v1/health/live", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"
        assert "X-Process-Time" in response.headers


@pytest.mark.unit
class TestServerRunner:

    def test_run_serves_app_with_configured_address(self):
        with patch("similarity_service.main.uvicorn.run") as uvicorn_run:
            run()

        uvicorn_run.assert_called_once()
        args, kwargs = uvicorn_run.call_args
        assert args == ("similarity_service.main:app",)
        assert kwargs["host"] == settings.HOST
        assert kwargs["port"] == settings.PORT
