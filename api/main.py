"""
GATHERLY - FastAPI Application

Assembles the HTTP surface in a fixed order:

    1. attach the realtime gateway
    2. mount route modules (they may bind realtime events)
    3. install the request pipeline and error handlers
    4. CORS and OpenTelemetry instrumentation

Subsystem handles arrive through the registry; nothing here connects them.
Bootstrap is the caller's job (see ``api.server``).
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from api.errors import install_exception_handlers
from api.pipeline import RequestPipeline, build_stages
from api.realtime import RealtimeGateway
from api.routes import mount_routes
from api.security.auth import AuthConfig, configure_auth
from api.security.cors import CORSConfig, add_cors_middleware
from config import Config, get_config
from core.health import HealthAggregator
from di.container import SubsystemRegistry
from observability import get_logger
from observability.tracing import instrument_fastapi

logger = get_logger("gatherly.api")

__version__ = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Release subsystem clients on shutdown."""
    logger.info("HTTP application started", phase="startup")
    yield
    logger.info("Shutting down Gatherly server", phase="shutdown")
    await app.state.registry.close_all()


def create_app(
    registry: SubsystemRegistry,
    gateway: Optional[RealtimeGateway] = None,
    config: Optional[Config] = None,
    auth_config: Optional[AuthConfig] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    config = config or get_config()
    gateway = gateway or RealtimeGateway()

    app = FastAPI(
        title="Gatherly Server",
        description="Gatherly HTTP and realtime API",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.config = config
    app.state.registry = registry
    app.state.health_aggregator = HealthAggregator(
        registry.handles,
        probe_timeout=config.subsystems.probe_timeout,
    )
    app.state.auth = configure_auth(auth_config)
    app.state.bootstrap_outcome = None

    # The gateway must exist before route modules bind realtime events
    gateway.attach(app)
    groups = mount_routes(app, gateway)

    install_exception_handlers(app)
    app.add_middleware(
        RequestPipeline,
        stages=build_stages(groups, app.state.auth, max_body_bytes=config.server.max_body_bytes),
    )

    # Added last so it wraps the pipeline and answers preflights first
    add_cors_middleware(app, CORSConfig(allow_origins=config.server.cors_origins))

    instrument_fastapi(app)
    return app
