"""
Tests for api/routes/health.py - GET /health.
"""
from unittest.mock import AsyncMock

from fastapi.testclient import TestClient

from api.main import create_app
from api.realtime import RealtimeGateway
from core.subsystems import Criticality
from di.container import SubsystemRegistry


class TestHealthEndpoint:

    def test_all_connected(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["database"] == "connected"
        assert body["cache"] == "connected"
        assert body["realtime"] == "connected"
        assert body["timestamp"].endswith("Z")

    def test_disconnected_subsystem_still_200(self, make_handle, test_config):
        registry = SubsystemRegistry([
            make_handle("database", Criticality.MANDATORY),
            make_handle("storage", probe="fail"),
        ])
        client = TestClient(create_app(registry, RealtimeGateway(), test_config))

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "error"
        assert response.json()["storage"] == "disconnected"

    def test_configured_error_status(self, make_handle, test_config):
        test_config.health.error_status_code = 503
        registry = SubsystemRegistry([make_handle("cache", probe="down")])
        client = TestClient(create_app(registry, RealtimeGateway(), test_config))

        response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "error"

    def test_hanging_probe_reported_disconnected(self, make_handle, test_config):
        registry = SubsystemRegistry([make_handle("messaging", probe="hang")])
        client = TestClient(create_app(registry, RealtimeGateway(), test_config))

        body = client.get("/health").json()

        assert body == {"status": "error", "messaging": "disconnected", "timestamp": body["timestamp"]}

    def test_aggregation_failure_is_500(self, app, client):
        app.state.health_aggregator.check = AsyncMock(side_effect=RuntimeError("registry corrupted"))

        response = client.get("/health")

        assert response.status_code == 500
        body = response.json()
        assert body["status"] == "error"
        assert body["message"] == "Health check failed"
        assert "timestamp" in body
        assert "registry corrupted" not in response.text

    def test_public_without_credentials(self, client):
        """Auth keys are configured in this app, yet /health needs none."""
        assert client.get("/health").status_code == 200

    def test_probes_on_every_request(self, client, call_log):
        client.get("/health")
        client.get("/health")

        assert call_log.count("probe:database") == 2
