"""
Endpoints for the signed-in identity.

All routes require "Authorization: Bearer <access token>".
"""

from fastapi import APIRouter, Depends

from trailauth.auth.authorizer import IdentityContext
from trailauth.auth.dependencies import get_auth_service, get_current_identity
from trailauth.auth.service import AuthService
from trailauth.schemas.common import ErrorResponse, MessageResponse
from trailauth.schemas.identity import IdentityResponse, PasswordChangeRequest, WithdrawResponse

router = APIRouter()

_AUTH_ERRORS = {401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}}


@router.get("/me", response_model=IdentityResponse, responses=_AUTH_ERRORS)
async def read_me(
    identity: IdentityContext = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
):
    record = await service.get_identity(identity.identity_id)
    return IdentityResponse.from_identity(record)


@router.patch("/me/password", response_model=MessageResponse, responses=_AUTH_ERRORS)
async def change_password(
    body: PasswordChangeRequest,
    identity: IdentityContext = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
):
    """Change password after re-checking the current one."""
    await service.change_password(identity.identity_id, body.current_password, body.new_password)
    return MessageResponse(message="Password changed")


@router.delete("/me", response_model=WithdrawResponse, responses=_AUTH_ERRORS)
async def withdraw(
    identity: IdentityContext = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
):
    """
    Deactivate the account and revoke every session.

    The account is soft-deleted; its email can be registered again.
    """
    revoked = await service.withdraw(identity.identity_id)
    return WithdrawResponse(message="Account withdrawn", sessions_revoked=revoked)
