"""
GATHERLY - Request Pipeline

Explicit, ordered middleware chain applied to every HTTP request:

    1. payload parsing
    2. structured request/response logging
    3. per-route-group authentication gate
    4. route dispatch
    5. error normalization (terminal)

The stage list is assembled once in ``create_app`` and installed as a
single Starlette middleware, so the order is data rather than a side
effect of registration calls. Every stage and the router are wrapped by
the error normalizer: an exception from any of them becomes a uniform
error response that the stages above it (logging included) observe as an
ordinary response.
"""
from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence

from starlette.background import BackgroundTask
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from api.errors import normalize_error
from api.security.auth import AuthProvider
from core.errors import AuthenticationError, BadRequestError, PayloadTooLargeError
from observability.logging import bind_context, clear_context, get_logger
from observability.metrics import get_gatherly_metrics

logger = get_logger("gatherly.api.pipeline")

Handler = Callable[[Request], Awaitable[Response]]
Stage = Callable[[Request, Handler], Awaitable[Response]]


# =============================================================================
# STAGE 1: PAYLOAD PARSING
# =============================================================================

class PayloadParser:
    """Reads the body once, bounded, and exposes JSON as ``request.state.payload``."""

    name = "payload"

    def __init__(self, max_body_bytes: int = 100 * 1024):
        self.max_body_bytes = max_body_bytes

    async def __call__(self, request: Request, call_next: Handler) -> Response:
        declared = request.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > self.max_body_bytes:
            raise PayloadTooLargeError(
                f"Request body exceeds {self.max_body_bytes} bytes",
                details={"limit": self.max_body_bytes},
            )

        body = await request.body()
        if len(body) > self.max_body_bytes:
            raise PayloadTooLargeError(
                f"Request body exceeds {self.max_body_bytes} bytes",
                details={"limit": self.max_body_bytes},
            )

        request.state.payload = self._parse(request, body)
        return await call_next(request)

    @staticmethod
    def _parse(request: Request, body: bytes):
        if not body:
            return {}
        content_type = request.headers.get("content-type", "")
        if "json" not in content_type:
            return {}
        try:
            return json.loads(body)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise BadRequestError("Malformed JSON body", details={"error": str(e)}) from e


# =============================================================================
# STAGE 2: REQUEST/RESPONSE LOGGING
# =============================================================================

class RequestLogger:
    """
    Logs the request on arrival and the response once it has been sent.

    The response line is emitted from a background task that runs after
    the last body chunk is flushed, so status and elapsed time are final.
    """

    name = "logging"

    async def __call__(self, request: Request, call_next: Handler) -> Response:
        start = time.perf_counter()
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        method = request.method
        path = request.url.path
        request.state.request_id = request_id

        clear_context()
        bind_context(request_id=request_id, method=method, path=path)

        fields = {}
        if request.query_params:
            fields["query"] = dict(request.query_params)
        payload = getattr(request.state, "payload", None)
        if payload:
            fields["body"] = payload
        logger.info(f"→ {method} {path}", **fields)

        response = await call_next(request)

        response.headers["X-Request-ID"] = request_id
        previous = response.background

        async def after_send() -> None:
            if previous is not None:
                await previous()
            duration = time.perf_counter() - start
            logger.info(
                f"← {method} {path} {response.status_code}",
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2),
            )
            metrics = get_gatherly_metrics()
            if metrics:
                metrics.record_api_request(
                    endpoint=path,
                    method=method,
                    duration=duration,
                    status_code=response.status_code,
                )
            clear_context()

        response.background = BackgroundTask(after_send)
        response.headers["X-Response-Time"] = f"{(time.perf_counter() - start) * 1000:.2f}ms"
        return response


# =============================================================================
# STAGE 3: AUTHENTICATION GATE
# =============================================================================

@dataclass(frozen=True)
class RouteGroup:
    """A path prefix and whether requests under it must be authenticated."""
    prefix: str
    authenticated: bool

    def matches(self, path: str) -> bool:
        prefix = self.prefix.rstrip("/")
        return path == prefix or path.startswith(prefix + "/") or prefix == ""


class AuthGate:
    """
    Requires a valid credential on authenticated route groups.

    The most specific (longest) matching prefix decides. Paths outside every
    group pass through; the router answers them, typically with 404.
    """

    name = "auth"

    def __init__(self, groups: Sequence[RouteGroup], provider: AuthProvider):
        self.groups = sorted(groups, key=lambda g: len(g.prefix), reverse=True)
        self.provider = provider

    def group_for(self, path: str) -> Optional[RouteGroup]:
        for group in self.groups:
            if group.matches(path):
                return group
        return None

    async def __call__(self, request: Request, call_next: Handler) -> Response:
        group = self.group_for(request.url.path)
        if group is not None and group.authenticated and request.method != "OPTIONS":
            user = await self.provider.authenticate(request)
            if user is None:
                raise AuthenticationError()
            request.state.user = user
            bind_context(user_id=user.id)
        return await call_next(request)


# =============================================================================
# PIPELINE
# =============================================================================

class RequestPipeline(BaseHTTPMiddleware):
    """Runs ``stages`` in order around the router, normalizing errors at every seam."""

    def __init__(self, app: ASGIApp, stages: Sequence[Stage]):
        super().__init__(app)
        self.stages: List[Stage] = list(stages)

    @property
    def stage_names(self) -> List[str]:
        return [getattr(s, "name", type(s).__name__) for s in self.stages]

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        handler: Handler = _guarded(call_next)
        for stage in reversed(self.stages):
            handler = _guarded(_bind(stage, handler))
        return await handler(request)


def _bind(stage: Stage, call_next: Handler) -> Handler:
    async def handler(request: Request) -> Response:
        return await stage(request, call_next)
    return handler


def _guarded(handler: Handler) -> Handler:
    async def guarded(request: Request) -> Response:
        try:
            return await handler(request)
        except Exception as exc:
            return normalize_error(request, exc)
    return guarded


def build_stages(
    groups: Sequence[RouteGroup],
    provider: AuthProvider,
    max_body_bytes: int = 100 * 1024,
) -> List[Stage]:
    """The fixed stage order: payload, logging, auth."""
    return [
        PayloadParser(max_body_bytes),
        RequestLogger(),
        AuthGate(groups, provider),
    ]
