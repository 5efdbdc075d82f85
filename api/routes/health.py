"""
GATHERLY - Health Route

``GET /health`` re-probes every subsystem and answers with the flat report.
The endpoint itself succeeded whenever aggregation returned, so the status
code stays 200 for a disconnected subsystem unless configured otherwise.
"""

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse

from api.pipeline import RouteGroup
from api.realtime import RealtimeGateway
from core.health import isoformat_utc
from observability.logging import get_logger

logger = get_logger("gatherly.api.health")

ROUTE_GROUP = RouteGroup("/health", authenticated=False)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request) -> JSONResponse:
    aggregator = request.app.state.health_aggregator
    try:
        report = await aggregator.check()
    except Exception as e:
        logger.error("Health aggregation failed", error=str(e), exc_info=e)
        return JSONResponse(
            status_code=500,
            content={
                "status": "error",
                "message": "Health check failed",
                "timestamp": isoformat_utc(),
            },
        )

    status_code = 200
    if not report.is_healthy:
        status_code = request.app.state.config.health.error_status_code
    return JSONResponse(status_code=status_code, content=report.to_response())


def register(app: FastAPI, gateway: RealtimeGateway) -> None:
    app.include_router(router)
