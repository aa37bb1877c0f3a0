"""Small shared helpers."""

import math
import uuid
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Opaque, immutable identifier for new rows."""
    return uuid.uuid4().hex


def normalize_email(email: str) -> str:
    """Canonical form used for storage and lookup (emails are case-insensitive)."""
    return email.strip().lower()


def seconds_until(deadline: datetime, now: datetime) -> int:
    """Whole seconds remaining until deadline, rounded up."""
    return math.ceil((deadline - now).total_seconds())


def redact_email(email: str) -> str:
    """a***@example.com style masking for logs."""
    local, _, domain = email.partition("@")
    if not domain:
        return "***"
    return f"{local[:1]}***@{domain}"
