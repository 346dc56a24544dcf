"""Tests for FastAPI application setup and exception handlers."""

from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from magic_link.core.errors import (
    DeliveryError,
    ExpiredOrInvalidTokenError,
    InternalError,
    MissingSecretError,
    ValidationError,
)
from magic_link.core.replay_guard import ReplayStoreUnavailableError
from magic_link.main import create_app, purge_replay_store


@pytest.fixture
def app():
    """Create test application instance."""
    return create_app()


@pytest.fixture
async def client(app):
    """Create async HTTP client for testing."""
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


class TestHealthEndpoint:
    """Tests for health check endpoint."""

    @pytest.mark.asyncio
    async def test_health_returns_healthy_status(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestAPIVersioning:
    @pytest.mark.asyncio
    async def test_v1_router_mounted(self, client):
        """Unknown v1 paths give 404, not a routing failure."""
        response = await client.get("/api/v1/nonexistent")
        assert response.status_code == 404

    def test_magic_link_routes_registered(self, app):
        paths = {route.path for route in app.routes}
        assert {
            "/api/v1/auth/magic-link",
            "/api/v1/auth/magic-link/validate",
            "/api/v1/auth/magic-link/login",
            "/api/v1/auth/magic-link/persistent-login",
            "/api/v1/auth/logout",
        } <= paths


class TestExceptionHandlers:
    """Tests that domain errors render with the error envelope."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("error", "status", "code"),
        [
            (ValidationError("Invalid input"), 400, "VALIDATION_ERROR"),
            (ExpiredOrInvalidTokenError(), 400, "INVALID_MAGIC_LINK"),
            (MissingSecretError(), 500, "CONFIGURATION_ERROR"),
            (DeliveryError("resend", "API returned 500"), 502, "DELIVERY_FAILED"),
            (InternalError(), 500, "INTERNAL_ERROR"),
        ],
    )
    async def test_api_error_envelope(self, app, client, error, status, code):
        @app.get("/test/error")
        async def raise_error():
            raise error

        response = await client.get("/test/error")

        assert response.status_code == status
        assert response.json()["error"]["code"] == code
        assert response.json()["error"]["message"] == error.message

    @pytest.mark.asyncio
    async def test_unhandled_exception_hides_details(self, app, client):
        @app.get("/test/crash")
        async def crash():
            raise RuntimeError("connection to prod-db-01 failed")

        response = await client.get("/test/crash")

        assert response.status_code == 500
        assert response.json()["error"] == {
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
            "details": None,
        }


class TestSecurityHeaders:
    @pytest.mark.asyncio
    async def test_default_headers(self, client):
        response = await client.get("/health")

        assert response.headers["x-frame-options"] == "DENY"
        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["referrer-policy"] == "strict-origin-when-cross-origin"

    @pytest.mark.asyncio
    async def test_api_responses_not_cached(self, client):
        response = await client.get("/api/v1/nonexistent")
        assert response.headers["cache-control"] == "no-store, max-age=0"


class TestPurgeReplayStore:
    """Tests for the startup purge of expired replay records."""

    @pytest.mark.asyncio
    async def test_returns_removed_count(self):
        guard = AsyncMock()
        guard.purge_expired.return_value = 3

        with patch("magic_link.main.get_replay_guard", return_value=guard):
            assert await purge_replay_store() == 3

    @pytest.mark.asyncio
    async def test_unreachable_store_is_skipped(self):
        guard = AsyncMock()
        guard.purge_expired.side_effect = ReplayStoreUnavailableError("down")

        with patch("magic_link.main.get_replay_guard", return_value=guard):
            assert await purge_replay_store() == 0
