"""
trailauth database models.

This module exports all SQLAlchemy models for the application.
"""

from trailauth.models.identity import Identity, PasswordCredential
from trailauth.models.session import RefreshSession
from trailauth.models.password_reset import PasswordResetRequest, cooldown_slot_for

__all__ = [
    "Identity",
    "PasswordCredential",
    "RefreshSession",
    "PasswordResetRequest",
    "cooldown_slot_for",
]
