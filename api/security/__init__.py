"""
GATHERLY - API Security Module

- Authentication (API key, JWT) behind the per-route-group auth gate
- CORS policy for browser clients

All authentication decisions are recorded as OpenTelemetry spans.
"""

from api.security.auth import (
    APIKeyAuth,
    AuthConfig,
    AuthProvider,
    CompositeAuthProvider,
    JWTAuth,
    User,
    configure_auth,
    get_current_user,
    require_auth,
)
from api.security.cors import (
    CORSConfig,
    add_cors_middleware,
)

__all__ = [
    # Auth
    "APIKeyAuth",
    "AuthConfig",
    "AuthProvider",
    "CompositeAuthProvider",
    "JWTAuth",
    "User",
    "configure_auth",
    "get_current_user",
    "require_auth",
    # CORS
    "CORSConfig",
    "add_cors_middleware",
]
