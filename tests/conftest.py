"""
GATHERLY - Test Configuration

Pytest fixtures and configuration for all tests.
"""
import asyncio
from typing import Callable, List, Optional

import pytest

from config import Config, Environment, HealthConfig, ServerConfig, SubsystemConfig
from core.subsystems import CallableHandle, Criticality, SubsystemStatus


@pytest.fixture(autouse=True)
def clean_auth_env(monkeypatch):
    """Keep developer credentials out of the tests."""
    for name in ("GATHERLY_API_KEY", "GATHERLY_API_KEYS", "JWT_SECRET"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def test_config() -> Config:
    """Configuration with short timeouts and no exporters."""
    return Config(
        env=Environment.TESTING,
        debug=False,
        server=ServerConfig(
            host="127.0.0.1",
            port=3000,
            cors_origins=["http://localhost:3000"],
            max_body_bytes=1024,
            access_log=False,
        ),
        subsystems=SubsystemConfig(
            connect_timeout=0.2,
            probe_timeout=0.2,
            connect_attempts=1,
            retry_delay=0.0,
            mandatory=["database"],
        ),
        health=HealthConfig(error_status_code=200),
    )


@pytest.fixture
def call_log() -> List[str]:
    """Shared record of connect/probe calls, in call order."""
    return []


@pytest.fixture
def make_handle(call_log) -> Callable[..., CallableHandle]:
    """
    Factory for in-memory subsystem handles.

    ``connect`` / ``probe`` behaviors:
        "ok"    succeed
        "fail"  raise RuntimeError
        "hang"  sleep far past any test timeout
    """

    def factory(
        name: str,
        criticality: Criticality = Criticality.OPTIONAL,
        connect: str = "ok",
        probe: str = "ok",
        probe_result: Optional[SubsystemStatus] = None,
    ) -> CallableHandle:

        async def connect_fn():
            call_log.append(f"connect:{name}")
            if connect == "fail":
                raise RuntimeError(f"{name} refused connection")
            if connect == "hang":
                await asyncio.sleep(60)

        async def probe_fn():
            call_log.append(f"probe:{name}")
            if probe == "fail":
                raise RuntimeError(f"{name} probe exploded")
            if probe == "hang":
                await asyncio.sleep(60)
            if probe_result is not None:
                return probe_result
            return probe == "ok"

        return CallableHandle(name, criticality, connect_fn, probe_fn)

    return factory
