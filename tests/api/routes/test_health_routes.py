"""
Tests for the health routes.
"""
from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from app.core.config import settings
from app.main import app


class TestHealth:

    def test_liveness(self):
        response = TestClient(app).get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_ready_with_in_process_backends(self, monkeypatch):
        monkeypatch.setattr(settings, "STORAGE_BACKEND", "memory")
        monkeypatch.setattr(settings, "RECEIPT_TRANSPORT", "direct")

        response = TestClient(app).get("/health/ready")

        assert response.status_code == 200
        assert response.json()["checks"] == {"storage": "ok", "receipts": "ok"}

    def test_not_ready_when_redis_down(self, monkeypatch):
        monkeypatch.setattr(settings, "STORAGE_BACKEND", "memory")
        monkeypatch.setattr(settings, "RECEIPT_TRANSPORT", "redis")

        with patch(
            "app.services.redis.check_redis_connection", AsyncMock(return_value=False)
        ):
            response = TestClient(app).get("/health/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"
