"""
GATHERLY - Process Entry

Startup order:

    observability -> realtime gateway -> subsystem registry -> app
    -> bootstrap sequencer -> HTTP listener

The listener only starts after the sequencer reports readiness. A
mandatory subsystem failure propagates as BootstrapAbortedError and the
port is never opened.
"""
from typing import Optional

import uvicorn

from api.main import create_app
from api.realtime import RealtimeGateway
from config import Config, get_config
from core.bootstrap import BootstrapOutcome, BootstrapSequencer
from core.errors import BootstrapAbortedError, ConfigurationError
from di.container import build_registry
from observability import setup_observability, shutdown_observability
from observability.logging import get_logger

logger = get_logger("gatherly.server")


async def serve(
    config: Optional[Config] = None,
    host: Optional[str] = None,
    port: Optional[int] = None,
) -> BootstrapOutcome:
    """
    Bootstrap every subsystem and serve HTTP until shutdown.

    Raises:
        ConfigurationError: configuration is invalid
        BootstrapAbortedError: a mandatory subsystem failed to connect
    """
    config = config or get_config()
    setup_observability(config)

    try:
        problems = config.validate()
        if problems:
            raise ConfigurationError("; ".join(problems))

        host = host or config.server.host
        port = port or config.server.port

        gateway = RealtimeGateway()
        registry = build_registry(config, gateway)
        app = create_app(registry, gateway, config)

        def on_ready(outcome: BootstrapOutcome) -> None:
            app.state.bootstrap_outcome = outcome
            logger.info(f"✓ Server ready, listening on port {port}", host=host, port=port)

        sequencer = BootstrapSequencer.from_config(config)
        try:
            outcome = await sequencer.run(registry.handles, on_ready=on_ready)
        except BootstrapAbortedError:
            await registry.close_all()
            raise

        server = uvicorn.Server(uvicorn.Config(
            app,
            host=host,
            port=port,
            log_config=None,
            access_log=config.server.access_log,
        ))
        await server.serve()
        return outcome
    finally:
        shutdown_observability()
