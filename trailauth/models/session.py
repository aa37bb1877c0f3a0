"""
Refresh session model.

Only the SHA-256 hex digest of a refresh token is stored; the raw token is
handed to the client once at issuance and cannot be rebuilt from this table.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from trailauth.core.database import Base, UTCDateTime
from trailauth.core.utils import new_id


class RefreshSession(Base):
    """One issued refresh token."""

    __tablename__ = "refresh_sessions"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    identity_id: Mapped[str] = mapped_column(
        ForeignKey("identities.id", ondelete="CASCADE"), nullable=False, index=True
    )
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    issued_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    revoked_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    def is_usable(self, now: datetime) -> bool:
        return self.revoked_at is None and now < self.expires_at

    def __repr__(self) -> str:
        state = "revoked" if self.revoked_at else "live"
        return f"<RefreshSession {self.id} identity={self.identity_id} {state}>"
