"""
GATHERLY - Authentication Module

Provides the authentication strategies behind the per-route-group auth gate:
- API Key authentication (X-API-Key header)
- JWT bearer token authentication

Features:
- Configurable providers
- Scope-based authorization
- Audit spans with OpenTelemetry
- Keys held only as SHA-256 digests
"""

from __future__ import annotations

import hashlib
import hmac
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone, timedelta
from typing import Any, Dict, List, Optional, Set

import jwt
from fastapi import Request
from opentelemetry import trace

from core.errors import AuthenticationError, RequestError
from observability.logging import get_logger

tracer = trace.get_tracer(__name__)
logger = get_logger("gatherly.auth")


@dataclass
class User:
    """Authenticated principal attached to ``request.state.user``."""

    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    scopes: Set[str] = field(default_factory=set)
    metadata: Dict[str, Any] = field(default_factory=dict)
    authenticated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def has_scope(self, scope: str) -> bool:
        """Check if user has a specific scope."""
        return scope in self.scopes or "*" in self.scopes

    def has_any_scope(self, scopes: List[str]) -> bool:
        """Check if user has any of the specified scopes."""
        return any(self.has_scope(s) for s in scopes)


@dataclass
class AuthConfig:
    """Authentication configuration."""

    # API Key settings
    api_key_header: str = "X-API-Key"
    api_key_env_var: str = "GATHERLY_API_KEY"
    api_keys_env_var: str = "GATHERLY_API_KEYS"

    # JWT settings
    jwt_secret: Optional[str] = field(default_factory=lambda: os.environ.get("JWT_SECRET") or None)
    jwt_algorithm: str = "HS256"
    jwt_expiry_hours: int = 24

    # Disabling auth lets every request through as an anonymous superuser
    enabled: bool = True


class AuthProvider(ABC):
    """Abstract base class for authentication providers."""

    @abstractmethod
    async def authenticate(self, request: Request) -> Optional[User]:
        """Authenticate a request and return user or None."""

    @abstractmethod
    def get_credentials(self, request: Request) -> Optional[str]:
        """Extract credentials from request."""


class APIKeyAuth(AuthProvider):
    """API Key authentication provider."""

    def __init__(self, config: AuthConfig):
        self.config = config
        self._keys: Dict[str, Set[str]] = {}  # sha256(key) -> scopes
        self._load_api_keys()

    def _load_api_keys(self) -> None:
        """Load API keys from environment variables."""
        primary_key = os.environ.get(self.config.api_key_env_var)
        if primary_key:
            self.add_key(primary_key, {"*"})

        # Format: key:scope1;scope2 or just key (read-only)
        for entry in os.environ.get(self.config.api_keys_env_var, "").split(","):
            entry = entry.strip()
            if not entry:
                continue
            if ":" in entry:
                api_key, scopes_str = entry.split(":", 1)
                scopes = {s.strip() for s in scopes_str.split(";") if s.strip()}
            else:
                api_key, scopes = entry, {"read"}
            self.add_key(api_key, scopes)

    @staticmethod
    def _hash_key(key: str) -> str:
        """Hash an API key for storage."""
        return hashlib.sha256(key.encode()).hexdigest()

    def add_key(self, key: str, scopes: Set[str]) -> None:
        self._keys[self._hash_key(key)] = set(scopes)

    def key_id(self, key: str) -> str:
        """Stable, non-reversible identifier for a key."""
        return f"api_key:{self._hash_key(key)[:16]}"

    @property
    def key_count(self) -> int:
        return len(self._keys)

    def verify_key(self, api_key: str) -> Optional[Set[str]]:
        """Return the key's scopes, or None when the key is unknown."""
        key_hash = self._hash_key(api_key)
        for known, scopes in self._keys.items():
            if hmac.compare_digest(known, key_hash):
                return set(scopes)
        return None

    def get_credentials(self, request: Request) -> Optional[str]:
        """Extract API key from request header."""
        return request.headers.get(self.config.api_key_header)

    async def authenticate(self, request: Request) -> Optional[User]:
        """Authenticate using API key."""
        api_key = self.get_credentials(request)
        if not api_key:
            return None

        scopes = self.verify_key(api_key)
        if scopes is None:
            with tracer.start_as_current_span("auth.api_key.failed") as span:
                span.set_attribute("auth.method", "api_key")
                span.set_attribute("auth.success", False)
                span.set_attribute("auth.key_prefix", api_key[:4] + "..." if len(api_key) > 8 else "***")
            return None

        with tracer.start_as_current_span("auth.api_key.success") as span:
            span.set_attribute("auth.method", "api_key")
            span.set_attribute("auth.success", True)
            span.set_attribute("auth.scopes", sorted(scopes))

        return User(
            id=self.key_id(api_key),
            name="API Key User",
            scopes=scopes,
            metadata={"auth_method": "api_key"},
        )


class JWTAuth(AuthProvider):
    """JWT bearer token authentication provider."""

    def __init__(self, config: AuthConfig):
        self.config = config
        self._secret = config.jwt_secret or ""

    @property
    def configured(self) -> bool:
        return bool(self._secret)

    def get_credentials(self, request: Request) -> Optional[str]:
        """Extract JWT from Authorization header."""
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            return auth_header[7:]
        return None

    async def authenticate(self, request: Request) -> Optional[User]:
        """Authenticate using JWT token."""
        token = self.get_credentials(request)
        if not token or not self._secret:
            return None

        try:
            payload = jwt.decode(token, self._secret, algorithms=[self.config.jwt_algorithm])
        except jwt.PyJWTError as e:
            with tracer.start_as_current_span("auth.jwt.failed") as span:
                span.set_attribute("auth.method", "jwt")
                span.set_attribute("auth.success", False)
                span.set_attribute("auth.error", type(e).__name__)
            logger.debug("Rejected bearer token", reason=type(e).__name__)
            return None

        with tracer.start_as_current_span("auth.jwt.success") as span:
            span.set_attribute("auth.method", "jwt")
            span.set_attribute("auth.success", True)
            span.set_attribute("auth.user_id", payload.get("sub", "unknown"))

        return User(
            id=payload.get("sub", "unknown"),
            name=payload.get("name"),
            email=payload.get("email"),
            scopes=set(payload.get("scopes", [])),
            metadata={
                "auth_method": "jwt",
                "issued_at": payload.get("iat"),
                "expires_at": payload.get("exp"),
            },
        )

    def generate_token(
        self,
        user_id: str,
        scopes: List[str],
        expiry_hours: Optional[int] = None,
        **extra_claims: Any,
    ) -> str:
        """Generate a signed JWT."""
        if not self._secret:
            raise RequestError(
                "Token issuance is not configured",
                status_code=503,
                error_code="SERVICE_UNAVAILABLE",
            )

        now = datetime.now(timezone.utc)
        expiry = now + timedelta(hours=expiry_hours or self.config.jwt_expiry_hours)

        payload = {
            "sub": user_id,
            "iat": int(now.timestamp()),
            "exp": int(expiry.timestamp()),
            "scopes": scopes,
            **extra_claims,
        }
        return jwt.encode(payload, self._secret, algorithm=self.config.jwt_algorithm)


class CompositeAuthProvider(AuthProvider):
    """Combines multiple authentication providers."""

    def __init__(self, providers: List[AuthProvider], enabled: bool = True):
        self.providers = providers
        self.enabled = enabled

    def get_provider(self, kind: type) -> Optional[AuthProvider]:
        for provider in self.providers:
            if isinstance(provider, kind):
                return provider
        return None

    @property
    def api_keys(self) -> APIKeyAuth:
        return self.get_provider(APIKeyAuth)

    @property
    def jwt(self) -> JWTAuth:
        return self.get_provider(JWTAuth)

    def get_credentials(self, request: Request) -> Optional[str]:
        """Try to get credentials from any provider."""
        for provider in self.providers:
            creds = provider.get_credentials(request)
            if creds:
                return creds
        return None

    async def authenticate(self, request: Request) -> Optional[User]:
        """Try to authenticate with each provider in order."""
        if not self.enabled:
            return User(id="anonymous", scopes={"*"}, metadata={"auth_method": "disabled"})
        for provider in self.providers:
            user = await provider.authenticate(request)
            if user:
                return user
        return None


def configure_auth(config: Optional[AuthConfig] = None) -> CompositeAuthProvider:
    """Build the provider chain: API key first, then JWT."""
    config = config or AuthConfig()
    provider = CompositeAuthProvider([APIKeyAuth(config), JWTAuth(config)], enabled=config.enabled)
    if not config.jwt_secret:
        logger.warning("JWT secret not configured; bearer tokens are disabled. Set JWT_SECRET.")
    return provider


def get_current_user(request: Request) -> Optional[User]:
    """FastAPI dependency: the user the auth gate attached, if any."""
    return getattr(request.state, "user", None)


def require_auth(request: Request) -> User:
    """
    FastAPI dependency that requires an authenticated user.

    Raises AuthenticationError if the auth gate did not attach one.
    """
    user = get_current_user(request)
    if user is None:
        raise AuthenticationError()
    return user
