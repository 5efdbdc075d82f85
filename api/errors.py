"""
GATHERLY - Error Normalization

Terminal stage of the request pipeline. Every error that escapes a route
or an earlier stage becomes the same JSON shape:

    {"status": "error", "code": "...", "message": "...", "timestamp": "..."}

Validation failures additionally carry ``details``. Stack traces are
logged, never sent.
"""
from http import HTTPStatus
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.errors import RequestError
from core.health import isoformat_utc
from observability.logging import get_logger

logger = get_logger("gatherly.api.errors")

INTERNAL_ERROR_CODE = "INTERNAL_ERROR"
INTERNAL_ERROR_MESSAGE = "Internal server error"


def error_body(
    code: str,
    message: str,
    details: Optional[Any] = None,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "status": "error",
        "code": code,
        "message": message,
        "timestamp": isoformat_utc(),
    }
    if details is not None:
        body["details"] = jsonable_encoder(details)
    return body


def _status_code_name(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase.upper().replace(" ", "_").replace("-", "_")
    except ValueError:
        return f"HTTP_{status_code}"


def normalize_error(request: Request, exc: BaseException) -> JSONResponse:
    """Convert ``exc`` into the uniform error response."""
    headers: Dict[str, str] = {}
    details: Optional[Any] = None

    if isinstance(exc, RequestError):
        status_code = exc.status_code
        code = exc.error_code
        message = exc.message
        details = exc.details
        headers = dict(exc.headers)
    elif isinstance(exc, RequestValidationError):
        status_code = 422
        code = "VALIDATION_ERROR"
        message = "Request validation failed"
        details = exc.errors()
    elif isinstance(exc, StarletteHTTPException):
        status_code = exc.status_code
        code = _status_code_name(exc.status_code)
        message = exc.detail if isinstance(exc.detail, str) else _status_code_name(exc.status_code)
        headers = dict(exc.headers or {})
    else:
        status_code = 500
        code = INTERNAL_ERROR_CODE
        message = INTERNAL_ERROR_MESSAGE

    if status_code >= 500:
        logger.error(
            "Unhandled error",
            method=request.method,
            path=request.url.path,
            status_code=status_code,
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=exc,
        )
    else:
        logger.info(
            "Request rejected",
            method=request.method,
            path=request.url.path,
            status_code=status_code,
            code=code,
        )

    return JSONResponse(
        status_code=status_code,
        content=error_body(code, message, details),
        headers=headers or None,
    )


def install_exception_handlers(app: FastAPI) -> None:
    """
    Route framework-level errors through ``normalize_error``.

    Starlette resolves these inside the router, so 404s, validation
    failures and RequestErrors reach the pipeline as normal responses.
    """

    async def handle(request: Request, exc: Exception) -> JSONResponse:
        return normalize_error(request, exc)

    app.add_exception_handler(RequestError, handle)
    app.add_exception_handler(RequestValidationError, handle)
    app.add_exception_handler(StarletteHTTPException, handle)
