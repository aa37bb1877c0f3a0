"""
Authentication endpoints.

Provides:
- Register / login (email + password -> token pair)
- Refresh (refresh token -> new access token, rotated refresh token if enabled)
- Logout (one session) and logout-all (every session)
- Forgot-password send / verify
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, status

from trailauth.auth.authorizer import IdentityContext, extract_bearer_token
from trailauth.auth.dependencies import get_auth_service, get_current_identity
from trailauth.auth.service import AuthResult, AuthService
from trailauth.schemas.auth import (
    AuthResponse,
    ForgotPasswordSendRequest,
    ForgotPasswordSendResponse,
    ForgotPasswordVerifyRequest,
    LoginRequest,
    LogoutResponse,
    RefreshTokenRequest,
    RefreshTokenResponse,
    RegisterRequest,
)
from trailauth.schemas.common import ErrorResponse, MessageResponse
from trailauth.schemas.identity import IdentityResponse

router = APIRouter()


def _auth_response(result: AuthResult, service: AuthService) -> AuthResponse:
    return AuthResponse(
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        expires_in=int(service.issuer.access_token_ttl.total_seconds()),
        identity=IdentityResponse.from_identity(result.identity),
    )


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
)
async def register(
    body: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
):
    """Create an account and return its first token pair."""
    result = await service.register(body.email, body.password, body.nickname)
    return _auth_response(result, service)


@router.post(
    "/login",
    response_model=AuthResponse,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def login(
    body: LoginRequest,
    service: AuthService = Depends(get_auth_service),
):
    """
    Authenticate with email and password.

    Each login opens a new session; other devices stay signed in.
    """
    result = await service.login(body.email, body.password)
    return _auth_response(result, service)


@router.post(
    "/refresh-token",
    response_model=RefreshTokenResponse,
    response_model_exclude_none=True,
    responses={401: {"model": ErrorResponse}},
)
async def refresh_token(
    body: RefreshTokenRequest,
    service: AuthService = Depends(get_auth_service),
):
    """Exchange a refresh token for a new access token."""
    result = await service.refresh(body.refresh_token)
    return RefreshTokenResponse(
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        expires_in=int(service.issuer.access_token_ttl.total_seconds()),
    )


@router.post(
    "/logout",
    response_model=LogoutResponse,
    responses={401: {"model": ErrorResponse}},
)
async def logout(
    authorization: Optional[str] = Header(default=None),
    service: AuthService = Depends(get_auth_service),
):
    """
    Revoke the session behind the presented bearer credential.

    Accepts an access token (revokes its session) or a refresh token.
    Logging out twice is not an error.
    """
    credential = extract_bearer_token(authorization)
    revoked = await service.logout(credential)
    return LogoutResponse(message="Logged out", revoked=revoked)


@router.post(
    "/logout-all",
    response_model=MessageResponse,
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def logout_all(
    identity: IdentityContext = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
):
    """Revoke every session of the caller."""
    revoked = await service.logout_all(identity.identity_id)
    return MessageResponse(message=f"Revoked {revoked} session(s)")


# =============================================================================
# Forgot password
# =============================================================================

@router.post(
    "/forgot-password/send",
    response_model=ForgotPasswordSendResponse,
    responses={404: {"model": ErrorResponse}, 429: {"model": ErrorResponse}},
)
async def forgot_password_send(
    body: ForgotPasswordSendRequest,
    service: AuthService = Depends(get_auth_service),
):
    """Email a 6-digit reset code. One request per cooldown window."""
    dispatch = await service.forgot_password_send(body.email)
    return ForgotPasswordSendResponse(
        message="Verification code sent",
        expires_at=dispatch.expires_at,
        delivered=dispatch.delivered,
    )


@router.post(
    "/forgot-password/verify",
    response_model=MessageResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def forgot_password_verify(
    body: ForgotPasswordVerifyRequest,
    service: AuthService = Depends(get_auth_service),
):
    """Consume a reset code and set the new password."""
    await service.forgot_password_verify(body.email, body.code, body.new_password)
    return MessageResponse(message="Password has been reset")
