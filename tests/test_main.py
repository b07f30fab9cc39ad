"""
Tests for the Main Application.

Covers the root and metrics endpoints and the uniform error body.
"""

from unittest.mock import patch

import pytest

from timeless.api.tool_routes import GENERIC_FAILURE
from timeless.config import settings
from timeless.db.migration_runner import get_sync_database_url


class TestEndpoints:
    """Tests for unauthenticated endpoints."""

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json() == {
            "service": settings.api_title,
            "version": settings.api_version,
            "status": "running",
        }

    def test_metrics_exposes_prometheus_text(self, client):
        client.get("/")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "http_requests_total" in response.text


class TestErrorShape:
    """Every error answers {"error": message}."""

    def test_unknown_route(self, client):
        response = client.get("/v1/does-not-exist")

        assert response.status_code == 404
        assert response.json() == {"error": "Not Found"}

    def test_wrong_method(self, client):
        response = client.get("/v1/image-tools")

        assert response.status_code == 405
        assert "error" in response.json()

    def test_malformed_json_is_400(self, db_client, auth_headers):
        response = db_client.post(
            "/v1/image-tools",
            content=b"{not json",
            headers={**auth_headers, "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request body"

    def test_unhandled_exception_is_generic(self, db_client, auth_headers):
        with patch(
            "timeless.api.generation_routes.ReconciliationService",
            side_effect=RuntimeError("secret detail"),
        ):
            response = db_client.post("/v1/check-generation", headers=auth_headers)

        assert response.status_code == 500
        assert response.json() == {"error": GENERIC_FAILURE}


class TestMigrationUrl:
    """Tests for get_sync_database_url."""

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("postgresql+asyncpg://u:p@db/x", "postgresql+psycopg2://u:p@db/x"),
            ("postgresql://u:p@db/x", "postgresql://u:p@db/x"),
        ],
    )
    def test_sync_url(self, url, expected):
        assert get_sync_database_url(url) == expected
