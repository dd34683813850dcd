"""
Health and version endpoints
"""
import pytest
from fastapi.testclient import TestClient

from matchday.main import APP_NAME, APP_VERSION, create_app


@pytest.fixture
def client(test_settings, services):
    return TestClient(create_app(settings=test_settings, services=services))


def test_health_endpoint_returns_200(client):
    """Test that /health returns HTTP 200"""
    response = client.get("/health")
    assert response.status_code == 200


def test_health_endpoint_returns_ok_status(client):
    """Test that /health returns status: ok"""
    data = client.get("/health").json()
    assert data["status"] == "ok"
    assert data["generator"] == "fake"
    assert data["subscribers"] == 0


def test_version_endpoint(client):
    data = client.get("/version").json()
    assert data["name"] == APP_NAME
    assert data["version"] == APP_VERSION


def test_app_builds_its_own_services_on_startup(test_settings):
    """Without injected services the lifespan builds and closes them"""
    with TestClient(create_app(settings=test_settings)) as client:
        data = client.get("/health").json()
    assert data["generator"] == "template"
