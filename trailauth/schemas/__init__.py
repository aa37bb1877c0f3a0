"""
trailauth API schemas.
"""

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
from trailauth.schemas.identity import IdentityResponse, PasswordChangeRequest, WithdrawResponse
