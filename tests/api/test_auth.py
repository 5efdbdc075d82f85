"""
Tests for api/security/auth.py and api/routes/auth.py - Authentication.

Covers:
- API key loading from the environment
- JWT verification and issuance
- The per-route-group gate on protected and public groups
- Token exchange endpoint
"""
import time
from unittest.mock import Mock

import jwt
import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from api.realtime import RealtimeGateway
from api.security.auth import APIKeyAuth, AuthConfig, CompositeAuthProvider, JWTAuth, configure_auth
from core.errors import RequestError
from di.container import SubsystemRegistry


def _request_with_headers(headers):
    request = Mock()
    request.headers = headers
    return request


# =============================================================================
# Providers
# =============================================================================

class TestAPIKeyAuth:

    def test_primary_key_gets_all_scopes(self, monkeypatch):
        monkeypatch.setenv("GATHERLY_API_KEY", "primary")
        auth = APIKeyAuth(AuthConfig())

        assert auth.verify_key("primary") == {"*"}

    def test_additional_keys_with_scopes(self, monkeypatch):
        monkeypatch.setenv("GATHERLY_API_KEYS", "k1:read;write, k2")
        auth = APIKeyAuth(AuthConfig())

        assert auth.verify_key("k1") == {"read", "write"}
        assert auth.verify_key("k2") == {"read"}
        assert auth.verify_key("k3") is None
        assert auth.key_count == 2

    @pytest.mark.asyncio
    async def test_authenticate(self):
        auth = APIKeyAuth(AuthConfig())
        auth.add_key("secret-key", {"notify"})

        user = await auth.authenticate(_request_with_headers({"X-API-Key": "secret-key"}))

        assert user.id == auth.key_id("secret-key")
        assert user.has_scope("notify")
        assert "secret-key" not in user.id

    @pytest.mark.asyncio
    async def test_missing_or_wrong_key(self):
        auth = APIKeyAuth(AuthConfig())
        auth.add_key("secret-key", {"*"})

        assert await auth.authenticate(_request_with_headers({})) is None
        assert await auth.authenticate(_request_with_headers({"X-API-Key": "other"})) is None


class TestJWTAuth:

    def _auth(self):
        return JWTAuth(AuthConfig(jwt_secret="unit-test-secret-of-decent-length-123"))

    @pytest.mark.asyncio
    async def test_round_trip(self):
        auth = self._auth()
        token = auth.generate_token("user-1", ["read"], email="a@b.c")

        user = await auth.authenticate(_request_with_headers({"Authorization": f"Bearer {token}"}))

        assert user.id == "user-1"
        assert user.email == "a@b.c"
        assert user.scopes == {"read"}

    @pytest.mark.asyncio
    async def test_expired_token_rejected(self):
        auth = self._auth()
        token = jwt.encode(
            {"sub": "user-1", "exp": int(time.time()) - 60},
            "unit-test-secret-of-decent-length-123",
            algorithm="HS256",
        )

        assert await auth.authenticate(_request_with_headers({"Authorization": f"Bearer {token}"})) is None

    @pytest.mark.asyncio
    async def test_wrong_signature_rejected(self):
        token = jwt.encode({"sub": "x"}, "another-secret-that-is-long-enough-42", algorithm="HS256")

        assert await self._auth().authenticate(_request_with_headers({"Authorization": f"Bearer {token}"})) is None

    def test_generate_without_secret(self):
        with pytest.raises(RequestError) as exc_info:
            JWTAuth(AuthConfig(jwt_secret=None)).generate_token("u", [])

        assert exc_info.value.status_code == 503


class TestCompositeAuthProvider:

    @pytest.mark.asyncio
    async def test_disabled_auth_is_anonymous(self):
        provider = configure_auth(AuthConfig(enabled=False, jwt_secret=None))

        user = await provider.authenticate(_request_with_headers({}))

        assert user.id == "anonymous"
        assert user.has_scope("anything")

    def test_provider_lookup(self):
        provider = configure_auth(AuthConfig(jwt_secret="s" * 40))

        assert isinstance(provider, CompositeAuthProvider)
        assert isinstance(provider.api_keys, APIKeyAuth)
        assert provider.jwt.configured


# =============================================================================
# HTTP
# =============================================================================

class TestAuthGate:

    def test_protected_group_requires_credentials(self, client):
        assert client.get("/api/notifications/clients").status_code == 401

    def test_api_key_accepted(self, client, auth_headers):
        assert client.get("/api/notifications/clients", headers=auth_headers).status_code == 200

    def test_invalid_api_key_rejected(self, client):
        response = client.get("/api/notifications/clients", headers={"X-API-Key": "wrong"})

        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHORIZED"

    def test_public_group_open(self, client):
        response = client.post("/api/auth/token", json={"api_key": "wrong"})

        # Reaches the route (401 from the handler, not the gate)
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid API key"


class TestTokenEndpoint:

    def test_exchange_and_use(self, client, auth_headers):
        response = client.post("/api/auth/token", json={"api_key": auth_headers["X-API-Key"]})

        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"
        assert body["expires_in"] == 24 * 3600
        assert body["scopes"] == ["*"]

        protected = client.get(
            "/api/notifications/clients",
            headers={"Authorization": f"Bearer {body['access_token']}"},
        )
        assert protected.status_code == 200

    def test_custom_expiry(self, client, auth_headers):
        response = client.post(
            "/api/auth/token",
            json={"api_key": auth_headers["X-API-Key"], "expires_in_hours": 2},
        )

        assert response.json()["expires_in"] == 7200

    def test_missing_field(self, client):
        response = client.post("/api/auth/token", json={})

        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_unconfigured_jwt(self, make_handle, test_config, monkeypatch):
        monkeypatch.setenv("GATHERLY_API_KEY", "k")
        app = create_app(
            SubsystemRegistry([make_handle("cache")]),
            RealtimeGateway(),
            test_config,
            auth_config=AuthConfig(jwt_secret=None),
        )

        response = TestClient(app).post("/api/auth/token", json={"api_key": "k"})

        assert response.status_code == 503
        assert response.json()["code"] == "SERVICE_UNAVAILABLE"
