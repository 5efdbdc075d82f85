"""
Tests for api/routes/notifications.py - Notification fan-out and queueing.
"""
import asyncio

import pytest
from unittest.mock import AsyncMock, patch
from redis.exceptions import ConnectionError as RedisConnectionError

from api.realtime import RealtimeChannelHandle
from core.errors import SubsystemConnectionError
from core.subsystems import Criticality
from di.container import SubsystemRegistry


@pytest.fixture
def mock_redis():
    mock = AsyncMock()
    mock.ping = AsyncMock(return_value=True)
    mock.xadd = AsyncMock(return_value="1700000000000-0")
    mock.xgroup_create = AsyncMock()
    mock.aclose = AsyncMock()
    return mock


@pytest.fixture
def messaging(mock_redis):
    from integrations.messaging import MessagingHandle

    with patch("integrations.messaging.aioredis.from_url", return_value=mock_redis):
        yield MessagingHandle("redis://localhost:6379/1")


@pytest.fixture
def registry(make_handle, gateway, messaging):
    return SubsystemRegistry([
        make_handle("database", Criticality.MANDATORY),
        messaging,
        RealtimeChannelHandle(gateway),
    ])


def _post(client, auth_headers):
    return client.post("/api/notifications", json={"message": "doors open"}, headers=auth_headers)


class TestNotificationQueueing:

    def test_queued_when_messaging_up(self, client, auth_headers, messaging, mock_redis):
        asyncio.run(messaging.connect())

        response = _post(client, auth_headers)

        assert response.status_code == 200
        assert response.json()["queued"] is True
        assert response.json()["message_id"] == "1700000000000-0"
        mock_redis.xadd.assert_awaited_once()

    def test_stream_write_failure_still_sends(self, client, auth_headers, messaging, mock_redis):
        asyncio.run(messaging.connect())
        mock_redis.xadd.side_effect = RedisConnectionError("connection reset by peer")

        response = _post(client, auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "sent"
        assert body["queued"] is False
        assert body["message_id"] is None

    def test_queue_recovered_after_failed_startup(self, client, auth_headers, messaging, mock_redis):
        mock_redis.ping.side_effect = [RedisConnectionError("refused"), True]
        with pytest.raises(SubsystemConnectionError):
            asyncio.run(messaging.connect())

        response = _post(client, auth_headers)

        assert response.status_code == 200
        assert response.json()["queued"] is True
        assert messaging.is_connected

    def test_queue_still_down(self, client, auth_headers, mock_redis):
        mock_redis.ping.side_effect = RedisConnectionError("refused")

        response = _post(client, auth_headers)

        assert response.status_code == 200
        assert response.json()["queued"] is False
        mock_redis.xadd.assert_not_awaited()
