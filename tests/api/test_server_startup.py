"""
Tests for api/server.py - Bootstrap before listen.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from api.server import serve
from core.errors import BootstrapAbortedError, ConfigurationError
from core.subsystems import Criticality
from di.container import SubsystemRegistry


@pytest.fixture
def uvicorn_mocks():
    with patch("api.server.uvicorn.Config") as config_cls, \
            patch("api.server.uvicorn.Server") as server_cls, \
            patch("api.server.setup_observability"), \
            patch("api.server.shutdown_observability") as shutdown:
        server_cls.return_value.serve = AsyncMock()
        yield MagicMock(config=config_cls, server=server_cls, shutdown=shutdown)


class TestServe:

    @pytest.mark.asyncio
    async def test_listens_after_bootstrap(self, test_config, make_handle, call_log, uvicorn_mocks):
        registry = SubsystemRegistry([
            make_handle("database", Criticality.MANDATORY),
            make_handle("cache", connect="fail"),
        ])

        with patch("api.server.build_registry", return_value=registry):
            outcome = await serve(test_config)

        assert outcome.ready
        assert outcome.degraded
        assert call_log == ["connect:database", "connect:cache"]
        uvicorn_mocks.server.return_value.serve.assert_awaited_once()

        app = uvicorn_mocks.config.call_args.args[0]
        assert app.state.bootstrap_outcome is outcome
        assert uvicorn_mocks.config.call_args.kwargs["port"] == 3000

    @pytest.mark.asyncio
    async def test_mandatory_failure_never_listens(self, test_config, make_handle, uvicorn_mocks):
        registry = SubsystemRegistry([
            make_handle("database", Criticality.MANDATORY, connect="fail"),
            make_handle("cache"),
        ])
        registry.close_all = AsyncMock()

        with patch("api.server.build_registry", return_value=registry):
            with pytest.raises(BootstrapAbortedError) as exc_info:
                await serve(test_config)

        assert exc_info.value.outcome.failed_subsystems == ["database"]
        uvicorn_mocks.server.assert_not_called()
        registry.close_all.assert_awaited_once()
        uvicorn_mocks.shutdown.assert_called_once()

    @pytest.mark.asyncio
    async def test_port_override(self, test_config, make_handle, uvicorn_mocks):
        registry = SubsystemRegistry([make_handle("database", Criticality.MANDATORY)])

        with patch("api.server.build_registry", return_value=registry):
            await serve(test_config, port=4123)

        assert uvicorn_mocks.config.call_args.kwargs["port"] == 4123

    @pytest.mark.asyncio
    async def test_invalid_config(self, test_config, uvicorn_mocks):
        test_config.subsystems.connect_timeout = 0

        with pytest.raises(ConfigurationError):
            await serve(test_config)

        uvicorn_mocks.server.assert_not_called()
