"""
Tests for the health check endpoint.
"""

import pytest
from django.db import DatabaseError


@pytest.fixture
def cache(mocker):
    cache = mocker.patch("core.views.cache")
    cache.get.return_value = "ok"
    return cache


@pytest.mark.django_db
class TestHealthCheck:
    def test_healthy(self, client, cache):
        response = client.get("/health/")

        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "database": "connected",
            "cache": "connected",
        }

    def test_cache_down_is_degraded_not_failed(self, client, cache):
        cache.get.return_value = None

        response = client.get("/health/")

        assert response.status_code == 200
        assert response.json()["cache"] == "disconnected"

    def test_database_down(self, client, cache, mocker):
        connection = mocker.patch("core.views.connection")
        connection.cursor.side_effect = DatabaseError("down")

        response = client.get("/health/")

        assert response.status_code == 503
        assert response.json()["database"] == "disconnected"
