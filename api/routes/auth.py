"""
GATHERLY - Auth Routes

``POST /api/auth/token`` trades a valid API key for a short-lived bearer
token. Public: callers reach it before they hold a token.
"""
from typing import List, Optional

from fastapi import APIRouter, FastAPI, Request
from pydantic import BaseModel, Field

from api.pipeline import RouteGroup
from api.realtime import RealtimeGateway
from core.errors import AuthenticationError, ServiceUnavailableError
from observability.logging import get_logger

logger = get_logger("gatherly.api.auth")

ROUTE_GROUP = RouteGroup("/api/auth", authenticated=False)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class TokenRequest(BaseModel):
    """Exchange an API key for a bearer token."""
    api_key: str = Field(..., min_length=1, description="API key issued to the caller")
    expires_in_hours: Optional[int] = Field(default=None, ge=1, le=24 * 30)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    scopes: List[str]


@router.post("/token", response_model=TokenResponse)
async def issue_token(body: TokenRequest, request: Request) -> TokenResponse:
    provider = request.app.state.auth
    jwt_auth = provider.jwt
    if jwt_auth is None or not jwt_auth.configured:
        raise ServiceUnavailableError("Token issuance is not configured")

    scopes = provider.api_keys.verify_key(body.api_key)
    if scopes is None:
        raise AuthenticationError("Invalid API key")

    hours = body.expires_in_hours or jwt_auth.config.jwt_expiry_hours
    user_id = provider.api_keys.key_id(body.api_key)
    token = jwt_auth.generate_token(user_id, sorted(scopes), expiry_hours=hours)
    logger.info("Issued bearer token", user_id=user_id, expires_in_hours=hours)
    return TokenResponse(access_token=token, expires_in=hours * 3600, scopes=sorted(scopes))


def register(app: FastAPI, gateway: RealtimeGateway) -> None:
    app.include_router(router)
