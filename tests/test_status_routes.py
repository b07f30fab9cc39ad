"""
Tests for Status API Routes.

Tests health check endpoints and provider status checks.
"""

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from timeless.api import status_routes
from timeless.api.status_routes import (
    ProviderStatus,
    StatusLevel,
    calculate_overall_status,
    check_http_provider,
    check_postgresql,
)


def provider(level: StatusLevel) -> ProviderStatus:
    return ProviderStatus(status=level, latency_ms=10, last_check=datetime.now(UTC).isoformat())


def mock_http_client(get: AsyncMock) -> MagicMock:
    """Stand-in for httpx.AsyncClient used as an async context manager."""
    client = MagicMock()
    client.get = get
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=None)
    return client


class TestCalculateOverallStatus:
    """Tests for calculate_overall_status."""

    def test_all_operational(self):
        providers = {"a": provider(StatusLevel.OPERATIONAL), "b": provider(StatusLevel.OPERATIONAL)}
        assert calculate_overall_status(providers) == StatusLevel.OPERATIONAL

    def test_degraded_wins_over_operational(self):
        providers = {"a": provider(StatusLevel.OPERATIONAL), "b": provider(StatusLevel.DEGRADED)}
        assert calculate_overall_status(providers) == StatusLevel.DEGRADED

    def test_outage_wins(self):
        providers = {"a": provider(StatusLevel.DEGRADED), "b": provider(StatusLevel.OUTAGE)}
        assert calculate_overall_status(providers) == StatusLevel.OUTAGE


class TestCheckPostgresql:
    """Tests for check_postgresql."""

    @pytest.mark.asyncio
    async def test_operational(self):
        session = AsyncMock()

        @asynccontextmanager
        async def fake_session():
            yield session

        with patch("timeless.api.status_routes.get_session", fake_session):
            result = await check_postgresql()

        assert result.status == StatusLevel.OPERATIONAL
        session.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_connection_failure(self):
        @asynccontextmanager
        async def broken_session():
            raise OSError("connection refused")
            yield

        with patch("timeless.api.status_routes.get_session", broken_session):
            result = await check_postgresql()

        assert result.status == StatusLevel.OUTAGE
        assert result.message == "Connection failed"


class TestCheckHttpProvider:
    """Tests for check_http_provider."""

    @pytest.mark.asyncio
    async def test_not_configured(self):
        result = await check_http_provider("fal", "https://queue.fal.test", "")

        assert result.status == StatusLevel.DEGRADED
        assert result.message == "Not configured"

    @pytest.mark.asyncio
    async def test_reachable(self):
        client = mock_http_client(AsyncMock(return_value=httpx.Response(401)))

        with patch("timeless.api.status_routes.httpx.AsyncClient", return_value=client):
            result = await check_http_provider("fal", "https://queue.fal.test", "key")

        assert result.status == StatusLevel.OPERATIONAL

    @pytest.mark.asyncio
    async def test_server_error_is_degraded(self):
        client = mock_http_client(AsyncMock(return_value=httpx.Response(503)))

        with patch("timeless.api.status_routes.httpx.AsyncClient", return_value=client):
            result = await check_http_provider("kie", "https://api.kie.test", "key")

        assert result.status == StatusLevel.DEGRADED
        assert result.message == "Unexpected status: 503"

    @pytest.mark.asyncio
    async def test_timeout_is_outage(self):
        client = mock_http_client(AsyncMock(side_effect=httpx.ReadTimeout("slow")))

        with patch("timeless.api.status_routes.httpx.AsyncClient", return_value=client):
            result = await check_http_provider("kie", "https://api.kie.test", "key")

        assert result.status == StatusLevel.OUTAGE
        assert result.message == "Timeout"

    @pytest.mark.asyncio
    async def test_connection_error_is_outage(self):
        client = mock_http_client(AsyncMock(side_effect=httpx.ConnectError("refused")))

        with patch("timeless.api.status_routes.httpx.AsyncClient", return_value=client):
            result = await check_http_provider("fal", "https://queue.fal.test", "key")

        assert result.status == StatusLevel.OUTAGE
        assert result.message == "Connection failed"


class TestStatusEndpoint:
    """Tests for GET /v1/status."""

    def test_aggregates_and_caches(self, client):
        status_routes._status_cache.clear()
        healthy = AsyncMock(return_value=provider(StatusLevel.OPERATIONAL))
        down = AsyncMock(return_value=provider(StatusLevel.OUTAGE))

        with (
            patch("timeless.api.status_routes.check_postgresql", healthy),
            patch("timeless.api.status_routes.check_fal", healthy),
            patch("timeless.api.status_routes.check_kie", down),
        ):
            first = client.get("/v1/status")
            second = client.get("/v1/status")

        status_routes._status_cache.clear()
        body = first.json()
        assert first.status_code == 200
        assert body["service"] == "timeless"
        assert body["status"] == "outage"
        assert set(body["providers"]) == {"postgresql", "fal", "kie"}
        assert second.json() == body
        assert down.await_count == 1
