"""
Credential Store.

Persists one Identity row and one PasswordCredential row per principal and
owns activation state. Works inside the caller's AsyncSession so every
write is visible to later reads in the same unit of work.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from trailauth.core.errors import DuplicateEmail, UserNotFound
from trailauth.core.utils import normalize_email, utcnow
from trailauth.models import Identity, PasswordCredential


class CredentialStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_identity(
        self,
        email: str,
        password_hash: str,
        nickname: Optional[str] = None,
    ) -> Identity:
        """
        Create an active identity with its password hash.

        Raises:
            DuplicateEmail: An active identity already uses this email
        """
        email = normalize_email(email)
        if await self.find_by_email(email) is not None:
            raise DuplicateEmail()

        identity = Identity(email=email, nickname=nickname, is_active=True)
        try:
            # Savepoint, so a lost race does not poison the outer transaction
            async with self.session.begin_nested():
                self.session.add(identity)
                await self.session.flush()
                self.session.add(
                    PasswordCredential(identity_id=identity.id, password_hash=password_hash)
                )
                await self.session.flush()
        except IntegrityError as exc:
            raise DuplicateEmail() from exc
        return identity

    async def find_by_email(self, email: str) -> Optional[Identity]:
        """Active identity with this email, if any."""
        result = await self.session.execute(
            select(Identity).where(
                Identity.email == normalize_email(email),
                Identity.is_active.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def find_by_id(self, identity_id: str) -> Optional[Identity]:
        """Identity by id, active or not."""
        return await self.session.get(Identity, identity_id)

    async def set_active(
        self,
        identity_id: str,
        active: bool,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Activate or soft-delete an identity. Idempotent.

        Returns:
            True if the row changed, False if it was already in that state

        Raises:
            UserNotFound: No identity with this id
        """
        now = now or utcnow()
        values: dict = {"is_active": active, "updated_at": now}
        values["deleted_at"] = None if active else now

        result = await self.session.execute(
            update(Identity)
            .where(Identity.id == identity_id, Identity.is_active == (not active))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            return True
        if await self.find_by_id(identity_id) is None:
            raise UserNotFound()
        return False

    async def get_password_hash(self, identity_id: str) -> Optional[str]:
        result = await self.session.execute(
            select(PasswordCredential.password_hash).where(
                PasswordCredential.identity_id == identity_id
            )
        )
        return result.scalar_one_or_none()

    async def set_password_hash(self, identity_id: str, password_hash: str) -> None:
        """Replace the stored hash. Only the orchestrator calls this."""
        result = await self.session.execute(
            update(PasswordCredential)
            .where(PasswordCredential.identity_id == identity_id)
            .values(password_hash=password_hash, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            raise UserNotFound()
