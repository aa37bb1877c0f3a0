"""
Authentication-related schemas.
"""

from datetime import datetime
from typing import Optional

from pydantic import EmailStr, Field, field_validator

from trailauth.schemas.common import CamelModel
from trailauth.schemas.identity import IdentityResponse


class _EmailBody(CamelModel):
    email: EmailStr = Field(description="Account email address")

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower().strip()


class RegisterRequest(_EmailBody):
    password: str = Field(min_length=8, max_length=128)
    nickname: Optional[str] = Field(default=None, min_length=1, max_length=100)


class LoginRequest(_EmailBody):
    password: str = Field(min_length=1, max_length=128)


class AuthResponse(CamelModel):
    """Token pair returned by register and login."""

    access_token: str = Field(description="Signed access token")
    refresh_token: str = Field(description="Opaque refresh token; shown only once")
    token_type: str = "bearer"
    expires_in: int = Field(description="Access token lifetime in seconds")
    identity: IdentityResponse


class RefreshTokenRequest(CamelModel):
    refresh_token: str = Field(min_length=1, max_length=512)


class RefreshTokenResponse(CamelModel):
    access_token: str
    refresh_token: Optional[str] = Field(
        default=None, description="Present only when refresh tokens rotate"
    )
    token_type: str = "bearer"
    expires_in: int


class LogoutResponse(CamelModel):
    message: str
    revoked: bool


class ForgotPasswordSendRequest(_EmailBody):
    pass


class ForgotPasswordSendResponse(CamelModel):
    message: str
    expires_at: datetime
    delivered: bool


class ForgotPasswordVerifyRequest(_EmailBody):
    code: str = Field(max_length=16, description="6-digit code from the reset email")
    new_password: str = Field(min_length=8, max_length=128)
