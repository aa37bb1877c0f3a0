"""
Session Store.

Durable table of refresh-token hashes. Revocation is a conditional update
on revoked_at IS NULL, so repeating it is a no-op and never moves an
existing revocation timestamp.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from trailauth.core.errors import RevocationIncomplete, SessionIntegrityError
from trailauth.core.logging import get_logger
from trailauth.core.utils import utcnow
from trailauth.models import RefreshSession

logger = get_logger(__name__)


class SessionStore:
    def __init__(self, session: AsyncSession, max_revoke_attempts: int = 3):
        self.session = session
        self.max_revoke_attempts = max_revoke_attempts

    async def save(self, refresh_session: RefreshSession) -> RefreshSession:
        """
        Persist a new refresh session.

        Raises:
            SessionIntegrityError: A session with the same token hash exists.
                Treated as fatal; never retried.
        """
        try:
            async with self.session.begin_nested():
                self.session.add(refresh_session)
                await self.session.flush()
        except IntegrityError as exc:
            logger.error(
                "refresh_session_hash_collision",
                identity_id=refresh_session.identity_id,
            )
            raise SessionIntegrityError("refresh token hash already stored") from exc
        return refresh_session

    async def find_by_hash(self, token_hash: str) -> Optional[RefreshSession]:
        result = await self.session.execute(
            select(RefreshSession).where(RefreshSession.token_hash == token_hash)
        )
        return result.scalar_one_or_none()

    async def revoke(
        self,
        identity_id: str,
        token_hash: str,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Revoke one session. No-op if it is already revoked or unknown.

        Returns:
            True if this call revoked it
        """
        result = await self.session.execute(
            update(RefreshSession)
            .where(
                RefreshSession.identity_id == identity_id,
                RefreshSession.token_hash == token_hash,
                RefreshSession.revoked_at.is_(None),
            )
            .values(revoked_at=now or utcnow())
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)

    async def revoke_by_id(
        self,
        identity_id: str,
        session_id: str,
        now: Optional[datetime] = None,
    ) -> bool:
        """Same as revoke(), addressed by session id (the access token's sid)."""
        result = await self.session.execute(
            update(RefreshSession)
            .where(
                RefreshSession.identity_id == identity_id,
                RefreshSession.id == session_id,
                RefreshSession.revoked_at.is_(None),
            )
            .values(revoked_at=now or utcnow())
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)

    async def revoke_all(self, identity_id: str, now: Optional[datetime] = None) -> int:
        """
        Revoke every non-revoked session of an identity.

        Repeats until a recount shows none left, so a session inserted
        concurrently with the first pass is not silently missed.

        Returns:
            Number of sessions revoked

        Raises:
            RevocationIncomplete: Sessions remained after max attempts
        """
        now = now or utcnow()
        revoked = 0
        for _ in range(self.max_revoke_attempts):
            result = await self.session.execute(
                update(RefreshSession)
                .where(
                    RefreshSession.identity_id == identity_id,
                    RefreshSession.revoked_at.is_(None),
                )
                .values(revoked_at=now)
                .execution_options(synchronize_session=False)
            )
            revoked += result.rowcount or 0
            if await self.count_unrevoked(identity_id) == 0:
                return revoked

        logger.error("revoke_all_incomplete", identity_id=identity_id)
        raise RevocationIncomplete(f"sessions remain for identity {identity_id}")

    async def count_unrevoked(self, identity_id: str) -> int:
        result = await self.session.execute(
            select(func.count(RefreshSession.id)).where(
                RefreshSession.identity_id == identity_id,
                RefreshSession.revoked_at.is_(None),
            )
        )
        return int(result.scalar_one())
