"""
Identity schemas.
"""

from datetime import datetime
from typing import Optional

from pydantic import Field

from trailauth.schemas.common import CamelModel


class IdentityResponse(CamelModel):
    """Public view of an identity. Never includes the password hash."""

    id: str = Field(description="Opaque identity ID")
    email: str
    nickname: Optional[str] = None
    language: str = "ko"
    distance_unit: str = "km"
    created_at: datetime

    @classmethod
    def from_identity(cls, identity) -> "IdentityResponse":
        return cls(
            id=identity.id,
            email=identity.email,
            nickname=identity.nickname,
            language=identity.language,
            distance_unit=identity.distance_unit,
            created_at=identity.created_at,
        )


class PasswordChangeRequest(CamelModel):
    current_password: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=8, max_length=128)


class WithdrawResponse(CamelModel):
    message: str
    sessions_revoked: int
