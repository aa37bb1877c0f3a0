"""
Password reset request model.

Rows are never deleted; they stay as history for the cooldown lookback.
At most one unconsumed row exists per identity: creating a request marks
every earlier unconsumed one as consumed in the same transaction.

cooldown_slot is floor(created_at epoch / cooldown seconds). The unique
(identity_id, cooldown_slot) constraint makes two sends racing inside the
same window fail at the store instead of both passing the cooldown read.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from trailauth.core.database import Base, UTCDateTime
from trailauth.core.utils import new_id, utcnow


def cooldown_slot_for(moment: datetime, cooldown_seconds: int) -> Optional[int]:
    if cooldown_seconds <= 0:
        return None
    return int(moment.timestamp()) // cooldown_seconds


class PasswordResetRequest(Base):
    """One outstanding or historical reset attempt."""

    __tablename__ = "password_reset_requests"
    __table_args__ = (
        UniqueConstraint("identity_id", "cooldown_slot", name="uq_reset_identity_slot"),
        Index("ix_reset_identity_created", "identity_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    identity_id: Mapped[str] = mapped_column(
        ForeignKey("identities.id", ondelete="CASCADE"), nullable=False
    )
    code: Mapped[str] = mapped_column(String(6), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    verified_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    consumed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    cooldown_slot: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    def __repr__(self) -> str:
        # never render the code
        return f"<PasswordResetRequest {self.id} consumed={self.consumed}>"
