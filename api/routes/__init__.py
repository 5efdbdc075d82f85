"""
GATHERLY - Route Modules

Each route module exposes ``ROUTE_GROUP`` (its path prefix and whether the
auth gate applies) and ``register(app, gateway)``, which adds its HTTP
routes and binds any realtime events it handles.
"""
import importlib
from typing import List, Sequence

from fastapi import FastAPI

from api.pipeline import RouteGroup
from api.realtime import RealtimeGateway, RealtimeGatewayNotReadyError
from observability.logging import get_logger

logger = get_logger("gatherly.api.routes")

ROUTE_MODULES = (
    "api.routes.health",
    "api.routes.auth",
    "api.routes.notifications",
)


def mount_routes(
    app: FastAPI,
    gateway: RealtimeGateway,
    modules: Sequence[str] = ROUTE_MODULES,
) -> List[RouteGroup]:
    """
    Register every route module on ``app`` and return their route groups.

    Raises:
        RealtimeGatewayNotReadyError: ``gateway`` is not attached yet
    """
    if not gateway.is_attached:
        raise RealtimeGatewayNotReadyError(
            "Attach the realtime gateway before mounting route modules"
        )

    groups: List[RouteGroup] = []
    for module_name in modules:
        module = importlib.import_module(module_name)
        module.register(app, gateway)
        groups.append(module.ROUTE_GROUP)
        logger.debug(
            "Route module mounted",
            module=module_name,
            prefix=module.ROUTE_GROUP.prefix,
            authenticated=module.ROUTE_GROUP.authenticated,
        )
    return groups


__all__ = ["ROUTE_MODULES", "mount_routes"]
