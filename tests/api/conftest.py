"""
Fixtures for the HTTP surface.
"""
import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from api.realtime import RealtimeChannelHandle, RealtimeGateway
from api.security.auth import AuthConfig
from core.subsystems import Criticality
from di.container import SubsystemRegistry

API_KEY = "test-api-key-0123456789"
JWT_SECRET = "test-jwt-secret-with-enough-length-for-hs256"


@pytest.fixture
def gateway():
    return RealtimeGateway()


@pytest.fixture
def registry(make_handle, gateway):
    return SubsystemRegistry([
        make_handle("database", Criticality.MANDATORY),
        make_handle("cache"),
        RealtimeChannelHandle(gateway),
    ])


@pytest.fixture
def auth_config(monkeypatch):
    monkeypatch.setenv("GATHERLY_API_KEY", API_KEY)
    return AuthConfig(jwt_secret=JWT_SECRET)


@pytest.fixture
def app(registry, gateway, test_config, auth_config):
    return create_app(registry, gateway, test_config, auth_config=auth_config)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def auth_headers():
    return {"X-API-Key": API_KEY}
