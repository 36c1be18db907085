"""Application startup and lifecycle tests."""

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from src.profile_import.api.http.app import app
from src.profile_import.api.http.app_data import ApplicationDependencies
from src.profile_import.core.storage import InMemorySessionStorage


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


class TestApplicationStartup:
    def test_startup_wires_dependencies(self, client):
        deps = client.app.state.app_dependencies

        assert isinstance(deps, ApplicationDependencies)
        # No REDIS_URL in the test environment
        assert isinstance(deps.session_storage, InMemorySessionStorage)

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"status": "healthy"}

    def test_ready(self, client):
        response = client.get("/ready")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"status": "ready"}

    def test_security_and_request_id_headers(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"

    def test_external_routes_mounted(self, client):
        response = client.get("/auth/external/status")

        assert response.status_code == status.HTTP_200_OK
        assert isinstance(response.json()["configured"], bool)

    def test_unknown_session_profile(self, client):
        response = client.get("/auth/external/profile", params={"session_id": "missing"})

        assert response.status_code == status.HTTP_404_NOT_FOUND
