"""
FastAPI dependencies for authentication.

Provides:
- get_auth_service: the AuthService composed at startup
- get_current_identity: run the Request Authorizer on the Authorization header
- get_client_ip: client address, honoring X-Forwarded-For
"""

from typing import Optional

from fastapi import Depends, Header, Request

from trailauth.auth.authorizer import IdentityContext
from trailauth.auth.service import AuthService


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


async def get_current_identity(
    authorization: Optional[str] = Header(default=None),
    service: AuthService = Depends(get_auth_service),
) -> IdentityContext:
    """
    Resolve the caller from "Authorization: Bearer <token>".

    Raises:
        Unauthorized 401: Header missing
        TokenExpired / InvalidToken 401: Token rejected
        Forbidden 403: Account gone or disabled
    """
    return await service.authorize(authorization)


def get_client_ip(request: Request) -> str:
    """
    Extract client IP address from request.
    Handles X-Forwarded-For header for proxied requests.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"
