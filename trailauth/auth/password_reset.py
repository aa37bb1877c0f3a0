"""
Password-Reset Coordinator.

Per identity a reset moves NONE -> PENDING -> CONSUMED:

- send() supersedes any pending request and stores a fresh 6-digit code in
  one transaction, then hands the code to the notification channel
- verify_and_reset() consumes the code with a conditional update
  (consumed = false AND expires_at > now) and rewrites the password hash in
  the same transaction, so two concurrent verifications cannot both win

Codes are never logged.
"""

import asyncio
import math
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from trailauth.auth.credentials import CredentialStore
from trailauth.auth.notifications import NotificationChannel
from trailauth.auth.password import hash_password
from trailauth.auth.sessions import SessionStore
from trailauth.core.config import Settings
from trailauth.core.database import Database
from trailauth.core.errors import InvalidOrExpiredCode, RateLimitExceeded, UserNotFound
from trailauth.core.logging import get_logger
from trailauth.core.utils import Clock, seconds_until, utcnow
from trailauth.models import PasswordResetRequest, cooldown_slot_for

logger = get_logger(__name__)

CODE_PATTERN = re.compile(r"^[0-9]{6}$")


def generate_reset_code() -> str:
    """Uniform 6-digit code, leading zeros kept."""
    return f"{secrets.randbelow(10**6):06d}"


@dataclass(frozen=True)
class ResetDispatch:
    """Outcome of send(). delivered=False means the channel failed; the code is still valid."""
    identity_id: str
    expires_at: datetime
    delivered: bool


@dataclass(frozen=True)
class ResetOutcome:
    identity_id: str
    sessions_revoked: int


class PasswordResetCoordinator:
    def __init__(
        self,
        database: Database,
        notifier: NotificationChannel,
        settings: Settings,
        clock: Clock = utcnow,
    ):
        self.database = database
        self.notifier = notifier
        self.settings = settings
        self.clock = clock

    @property
    def code_ttl(self) -> timedelta:
        return timedelta(minutes=self.settings.reset_code_expire_minutes)

    @property
    def cooldown(self) -> timedelta:
        return timedelta(minutes=self.settings.reset_cooldown_minutes)

    async def send(self, email: str) -> ResetDispatch:
        """
        Issue a new reset code for the identity behind email.

        Raises:
            UserNotFound: No active identity with this email
            RateLimitExceeded: A code was issued within the cooldown window
        """
        now = self.clock()
        cooldown_seconds = int(self.cooldown.total_seconds())
        code = generate_reset_code()

        async with self.database.transaction() as session:
            identity = await CredentialStore(session).find_by_email(email)
            if identity is None:
                raise UserNotFound()

            if cooldown_seconds > 0:
                last_created = (
                    await session.execute(
                        select(PasswordResetRequest.created_at)
                        .where(PasswordResetRequest.identity_id == identity.id)
                        .order_by(PasswordResetRequest.created_at.desc())
                        .limit(1)
                    )
                ).scalar_one_or_none()
                if last_created is not None and now < last_created + self.cooldown:
                    logger.info("reset_code_rate_limited", identity_id=identity.id)
                    raise RateLimitExceeded(seconds_until(last_created + self.cooldown, now))

            # Supersede whatever is still pending
            await session.execute(
                update(PasswordResetRequest)
                .where(
                    PasswordResetRequest.identity_id == identity.id,
                    PasswordResetRequest.consumed.is_(False),
                )
                .values(consumed=True)
                .execution_options(synchronize_session=False)
            )

            request = PasswordResetRequest(
                identity_id=identity.id,
                code=code,
                expires_at=now + self.code_ttl,
                created_at=now,
                cooldown_slot=cooldown_slot_for(now, cooldown_seconds),
            )
            try:
                async with session.begin_nested():
                    session.add(request)
                    await session.flush()
            except IntegrityError as exc:
                # Lost a race with a concurrent send in the same window
                slot_end = (request.cooldown_slot + 1) * cooldown_seconds
                retry_after = math.ceil(slot_end - now.timestamp())
                logger.info("reset_code_rate_limited", identity_id=identity.id, race=True)
                raise RateLimitExceeded(retry_after) from exc

            identity_id = identity.id
            destination = identity.email
            expires_at = request.expires_at

        logger.info("reset_code_issued", identity_id=identity_id)
        delivered = await self._dispatch(identity_id, destination, code)
        return ResetDispatch(identity_id=identity_id, expires_at=expires_at, delivered=delivered)

    async def _dispatch(self, identity_id: str, destination: str, code: str) -> bool:
        try:
            await self.notifier.send_reset_code(destination, code)
        except Exception:
            # Committed code stays valid; the client may ask again after cooldown
            logger.exception("reset_code_delivery_failed", identity_id=identity_id)
            return False
        return True

    async def verify_and_reset(self, email: str, code: str, new_password: str) -> ResetOutcome:
        """
        Consume a reset code and set a new password atomically.

        Raises:
            UserNotFound: No active identity with this email
            InvalidOrExpiredCode: Wrong, expired, superseded or already used code
        """
        if not isinstance(code, str) or not CODE_PATTERN.match(code):
            raise InvalidOrExpiredCode()

        # Hash before opening the transaction; it is the slow part
        new_hash = await asyncio.to_thread(hash_password, new_password)
        now = self.clock()
        sessions_revoked = 0

        async with self.database.transaction() as session:
            credentials = CredentialStore(session)
            identity = await credentials.find_by_email(email)
            if identity is None:
                raise UserNotFound()

            result = await session.execute(
                update(PasswordResetRequest)
                .where(
                    PasswordResetRequest.identity_id == identity.id,
                    PasswordResetRequest.code == code,
                    PasswordResetRequest.consumed.is_(False),
                    PasswordResetRequest.expires_at > now,
                )
                .values(consumed=True, verified_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                logger.info("reset_code_rejected", identity_id=identity.id)
                raise InvalidOrExpiredCode()

            await credentials.set_password_hash(identity.id, new_hash)

            if self.settings.revoke_sessions_on_password_reset:
                sessions = SessionStore(session, self.settings.revoke_all_max_attempts)
                sessions_revoked = await sessions.revoke_all(identity.id, now)

            identity_id = identity.id

        logger.info(
            "password_reset_completed",
            identity_id=identity_id,
            sessions_revoked=sessions_revoked,
        )
        return ResetOutcome(identity_id=identity_id, sessions_revoked=sessions_revoked)
