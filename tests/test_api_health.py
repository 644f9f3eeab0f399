"""Tests for health check endpoints."""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from cardswap.db.database import get_session
from cardswap.main import app


class TestHealthEndpoint:
    async def test_health_returns_healthy(self, client: AsyncClient) -> None:
        """Liveness probe returns healthy."""
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data.get("database") is None


class TestReadyEndpoint:
    async def test_ready_returns_ready(self, client: AsyncClient) -> None:
        """Readiness probe returns ready when DB is connected."""
        response = await client.get("/ready")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"
        assert data["database"] == "connected"

    async def test_ready_reports_shipping_credentials(
        self, client: AsyncClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Missing gateway credentials are reported without failing readiness."""
        monkeypatch.setattr("cardswap.api.health.settings.shipping_api_key", "")

        response = await client.get("/ready")

        assert response.status_code == 200
        assert response.json()["shipping"] == "unconfigured"

    async def test_ready_returns_503_on_db_failure(self) -> None:
        """Readiness probe returns 503 when DB is unavailable."""
        from unittest.mock import AsyncMock

        async def override_get_session_broken():
            mock_session = AsyncMock()
            mock_session.execute.side_effect = OperationalError("SELECT 1", {}, Exception("down"))
            yield mock_session

        app.dependency_overrides[get_session] = override_get_session_broken

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/ready")

        app.dependency_overrides.clear()

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "not ready"
        assert data["database"] == "disconnected"
