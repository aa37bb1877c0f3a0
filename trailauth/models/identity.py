"""
Identity and password credential models.

- Email is stored lowercased and is unique among active identities only,
  so a withdrawn address can register again
- The password hash lives in its own table, one row per identity
- All timestamps are UTC
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from trailauth.core.database import Base, UTCDateTime
from trailauth.core.utils import new_id, utcnow


class Identity(Base):
    """A registered principal."""

    __tablename__ = "identities"
    __table_args__ = (
        Index(
            "uq_identities_active_email",
            "email",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    nickname: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Preferences
    language: Mapped[str] = mapped_column(String(8), default="ko", nullable=False)
    distance_unit: Mapped[str] = mapped_column(String(8), default="km", nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<Identity {self.id} active={self.is_active}>"


class PasswordCredential(Base):
    """Argon2id hash of an identity's password. Never holds plaintext."""

    __tablename__ = "password_credentials"

    identity_id: Mapped[str] = mapped_column(
        ForeignKey("identities.id", ondelete="CASCADE"), primary_key=True
    )
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<PasswordCredential {self.identity_id}>"
