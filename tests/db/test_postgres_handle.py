"""
Tests for db/postgres.py - PostgreSQL handle.

Covers:
- Configuration and default criticality
- Engine creation and SELECT 1 on connect
- Probe against a live, failing or missing engine
- Engine disposal on close
"""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from core.errors import ProbeError, SubsystemConnectionError
from core.subsystems import Criticality


def _mock_engine(execute_side_effect=None):
    engine = MagicMock()
    conn = AsyncMock()
    if execute_side_effect is not None:
        conn.execute.side_effect = execute_side_effect
    engine.connect.return_value.__aenter__.return_value = conn
    engine.connect.return_value.__aexit__.return_value = False
    engine.dispose = AsyncMock()
    return engine, conn


class TestPostgresHandleInit:
    """Tests for PostgresHandle construction."""

    def test_defaults(self):
        from db.postgres import PostgresHandle

        handle = PostgresHandle("postgresql+asyncpg://u:p@localhost/db")

        assert handle.name == "database"
        assert handle.criticality is Criticality.MANDATORY
        assert handle.pool_size == 10
        assert handle.engine is None

    def test_custom_configuration(self):
        from db.postgres import PostgresHandle

        handle = PostgresHandle(
            "postgresql+asyncpg://custom@db/test",
            pool_size=4,
            criticality=Criticality.OPTIONAL,
            name="replica",
        )

        assert handle.name == "replica"
        assert handle.pool_size == 4
        assert not handle.is_mandatory


class TestPostgresHandleConnect:
    """Tests for connect()."""

    @pytest.mark.asyncio
    async def test_connect_runs_select_one(self):
        from db.postgres import PostgresHandle

        engine, conn = _mock_engine()
        with patch("db.postgres.create_async_engine", return_value=engine) as create:
            handle = PostgresHandle("postgresql+asyncpg://u:p@localhost/db", pool_size=5)
            await handle.connect()

        create.assert_called_once()
        assert create.call_args.args[0] == "postgresql+asyncpg://u:p@localhost/db"
        assert create.call_args.kwargs["pool_size"] == 5
        assert create.call_args.kwargs["pool_pre_ping"] is True
        conn.execute.assert_awaited_once()
        assert str(conn.execute.call_args.args[0]) == "SELECT 1"
        assert handle.is_connected

    @pytest.mark.asyncio
    async def test_connect_failure_wrapped(self):
        from db.postgres import PostgresHandle

        engine, _ = _mock_engine(execute_side_effect=OSError("connection refused"))
        with patch("db.postgres.create_async_engine", return_value=engine):
            handle = PostgresHandle("postgresql+asyncpg://u:p@localhost/db")
            with pytest.raises(SubsystemConnectionError) as exc_info:
                await handle.connect()

        assert exc_info.value.subsystem == "database"
        assert not handle.is_connected
        # Engine kept so later probes can observe recovery
        assert handle.engine is engine

    @pytest.mark.asyncio
    async def test_engine_created_once_across_retries(self):
        from db.postgres import PostgresHandle

        engine, conn = _mock_engine(execute_side_effect=[OSError("down"), None])
        with patch("db.postgres.create_async_engine", return_value=engine) as create:
            handle = PostgresHandle("postgresql+asyncpg://u:p@localhost/db")
            with pytest.raises(SubsystemConnectionError):
                await handle.connect()
            await handle.connect()

        create.assert_called_once()
        assert handle.is_connected


class TestPostgresHandleProbe:
    """Tests for probe()."""

    @pytest.mark.asyncio
    async def test_probe_without_engine(self):
        from db.postgres import PostgresHandle

        status = await PostgresHandle("postgresql+asyncpg://u:p@localhost/db").probe()

        assert not status.is_connected
        assert status.detail == "engine not initialized"

    @pytest.mark.asyncio
    async def test_probe_connected(self):
        from db.postgres import PostgresHandle

        engine, conn = _mock_engine()
        with patch("db.postgres.create_async_engine", return_value=engine):
            handle = PostgresHandle("postgresql+asyncpg://u:p@localhost/db")
            await handle.connect()
            status = await handle.probe()

        assert status.is_connected
        assert conn.execute.await_count == 2

    @pytest.mark.asyncio
    async def test_probe_failure_raises_probe_error(self):
        from db.postgres import PostgresHandle

        engine, conn = _mock_engine()
        with patch("db.postgres.create_async_engine", return_value=engine):
            handle = PostgresHandle("postgresql+asyncpg://u:p@localhost/db")
            await handle.connect()
            conn.execute.side_effect = ConnectionResetError("server closed the connection")

            with pytest.raises(ProbeError):
                await handle.probe()


class TestPostgresHandleClose:

    @pytest.mark.asyncio
    async def test_close_disposes_engine(self):
        from db.postgres import PostgresHandle

        engine, _ = _mock_engine()
        with patch("db.postgres.create_async_engine", return_value=engine):
            handle = PostgresHandle("postgresql+asyncpg://u:p@localhost/db")
            await handle.connect()
            await handle.close()

        engine.dispose.assert_awaited_once()
        assert handle.engine is None
        assert not handle.is_connected

    @pytest.mark.asyncio
    async def test_close_when_never_connected(self):
        from db.postgres import PostgresHandle

        await PostgresHandle("postgresql+asyncpg://u:p@localhost/db").close()
