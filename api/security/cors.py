"""
GATHERLY - CORS Configuration

Origins come from ``ServerConfig.cors_origins``. A wildcard origin is never
combined with credentials.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List
from urllib.parse import urlparse

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.errors import ConfigurationError


@dataclass
class CORSConfig:
    """CORS policy for browser clients of the HTTP API."""

    allow_origins: List[str] = field(default_factory=list)
    allow_credentials: bool = True
    allow_methods: List[str] = field(default_factory=lambda: [
        "GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"
    ])
    allow_headers: List[str] = field(default_factory=lambda: [
        "Accept",
        "Accept-Language",
        "Content-Type",
        "Authorization",
        "X-API-Key",
        "X-Request-ID",
    ])
    expose_headers: List[str] = field(default_factory=lambda: [
        "X-Request-ID",
        "X-Trace-ID",
        "X-Response-Time",
    ])
    max_age: int = 600

    def __post_init__(self):
        # Remove duplicates while preserving order
        self.allow_origins = list(dict.fromkeys(self.allow_origins))

        if "*" in self.allow_origins and self.allow_credentials:
            raise ConfigurationError(
                "Cannot use wildcard origin ('*') with credentials; list exact origins instead",
                setting="CORS_ORIGINS",
            )
        malformed = [o for o in self.allow_origins if o != "*" and not validate_origin(o)]
        if malformed:
            raise ConfigurationError(f"Malformed CORS origins: {malformed}", setting="CORS_ORIGINS")


def add_cors_middleware(app: FastAPI, config: CORSConfig) -> None:
    """Install Starlette's CORS middleware with ``config``."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allow_origins,
        allow_credentials=config.allow_credentials,
        allow_methods=config.allow_methods,
        allow_headers=config.allow_headers,
        expose_headers=config.expose_headers,
        max_age=config.max_age,
    )


def validate_origin(origin: str) -> bool:
    """True if origin is a URL with scheme and host."""
    parsed = urlparse(origin)
    return bool(parsed.scheme and parsed.netloc)
