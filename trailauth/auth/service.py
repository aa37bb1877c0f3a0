"""
Auth Orchestrator.

The one public entry point for register/login/refresh/logout/withdraw and the
password flows. Every operation runs under a store timeout and behind a
single error boundary: taxonomy errors pass through untouched, anything else
is logged and replaced with UnexpectedError.

Identity states: UNREGISTERED -> ACTIVE (0..N live sessions) -> DEACTIVATED.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Optional, TypeVar

from email_validator import EmailNotValidError, validate_email

from trailauth.auth.authorizer import IdentityContext, RequestAuthorizer
from trailauth.auth.credentials import CredentialStore
from trailauth.auth.jwt import TokenIssuer, hash_refresh_token
from trailauth.auth.notifications import NotificationChannel, build_notification_channel
from trailauth.auth.password import hash_password, needs_rehash, verify_password
from trailauth.auth.password_reset import PasswordResetCoordinator, ResetDispatch, ResetOutcome
from trailauth.auth.sessions import SessionStore
from trailauth.core.config import Settings
from trailauth.core.database import Database
from trailauth.core.errors import (
    AuthError,
    ConfigurationError,
    InvalidCredentials,
    InvalidToken,
    UnexpectedError,
    UserNotFound,
    ValidationFailed,
)
from trailauth.core.logging import get_logger
from trailauth.core.utils import Clock, normalize_email, utcnow
from trailauth.models import Identity

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class AuthResult:
    """Token pair plus the identity it was issued for."""
    access_token: str
    refresh_token: str
    identity: Identity


@dataclass(frozen=True)
class RefreshResult:
    access_token: str
    refresh_token: Optional[str] = None  # set only when rotation is on


class AuthService:
    def __init__(
        self,
        settings: Settings,
        database: Database,
        issuer: TokenIssuer,
        authorizer: RequestAuthorizer,
        reset: PasswordResetCoordinator,
        clock: Clock = utcnow,
    ):
        self.settings = settings
        self.database = database
        self.issuer = issuer
        self.authorizer = authorizer
        self.reset = reset
        self.clock = clock

    @classmethod
    def create(
        cls,
        settings: Settings,
        database: Database,
        notifier: Optional[NotificationChannel] = None,
        clock: Clock = utcnow,
    ) -> "AuthService":
        """Wire the component graph around one database handle."""
        issuer = TokenIssuer(settings, clock)
        return cls(
            settings=settings,
            database=database,
            issuer=issuer,
            authorizer=RequestAuthorizer(database, issuer),
            reset=PasswordResetCoordinator(
                database,
                notifier or build_notification_channel(settings),
                settings,
                clock,
            ),
            clock=clock,
        )

    # =========================================================================
    # Error boundary
    # =========================================================================

    async def _guard(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.settings.store_timeout_seconds)
        except (AuthError, ConfigurationError):
            raise
        except Exception as exc:
            logger.exception("auth_operation_failed", operation=operation)
            raise UnexpectedError() from exc

    def _sessions(self, session) -> SessionStore:
        return SessionStore(session, self.settings.revoke_all_max_attempts)

    # =========================================================================
    # Input validation
    # =========================================================================

    def _check_email(self, email: Any) -> str:
        if not isinstance(email, str) or not email.strip():
            raise ValidationFailed("Email is required", details={"field": "email"})
        try:
            validate_email(email.strip(), check_deliverability=False)
        except EmailNotValidError as exc:
            raise ValidationFailed("Invalid email format", details={"field": "email"}) from exc
        return normalize_email(email)

    def _check_new_password(self, password: Any, field: str = "password") -> str:
        minimum = self.settings.password_min_length
        if not isinstance(password, str) or len(password) < minimum:
            raise ValidationFailed(
                f"Password must be at least {minimum} characters",
                details={"field": field},
            )
        return password

    @staticmethod
    def _check_nickname(nickname: Any) -> Optional[str]:
        if nickname is None:
            return None
        if not isinstance(nickname, str) or not nickname.strip():
            raise ValidationFailed("Nickname must not be empty", details={"field": "nickname"})
        return nickname.strip()

    # =========================================================================
    # Operations
    # =========================================================================

    async def register(self, email: str, password: str, nickname: Optional[str] = None) -> AuthResult:
        return await self._guard("register", self._register(email, password, nickname))

    async def _register(self, email, password, nickname) -> AuthResult:
        email = self._check_email(email)
        password = self._check_new_password(password)
        nickname = self._check_nickname(nickname)

        password_hash = await asyncio.to_thread(hash_password, password)
        async with self.database.transaction() as session:
            identity = await CredentialStore(session).create_identity(email, password_hash, nickname)
            tokens = self.issuer.issue(identity.id, self.clock())
            await self._sessions(session).save(tokens.session)

        logger.info("identity_registered", identity_id=identity.id)
        return AuthResult(tokens.access_token, tokens.refresh_token, identity)

    async def login(self, email: str, password: str) -> AuthResult:
        return await self._guard("login", self._login(email, password))

    async def _login(self, email, password) -> AuthResult:
        email = self._check_email(email)
        if not isinstance(password, str) or not password:
            raise ValidationFailed("Password is required", details={"field": "password"})

        async with self.database.session() as session:
            credentials = CredentialStore(session)
            identity = await credentials.find_by_email(email)
            if identity is None:
                raise UserNotFound()
            stored_hash = await credentials.get_password_hash(identity.id)

        if not stored_hash or not await asyncio.to_thread(verify_password, password, stored_hash):
            logger.info("login_failed", identity_id=identity.id)
            raise InvalidCredentials()

        upgraded_hash = None
        if needs_rehash(stored_hash):
            upgraded_hash = await asyncio.to_thread(hash_password, password)

        async with self.database.transaction() as session:
            if upgraded_hash:
                await CredentialStore(session).set_password_hash(identity.id, upgraded_hash)
            tokens = self.issuer.issue(identity.id, self.clock())
            await self._sessions(session).save(tokens.session)

        logger.info("login_succeeded", identity_id=identity.id, session_id=tokens.session.id)
        return AuthResult(tokens.access_token, tokens.refresh_token, identity)

    async def refresh(self, refresh_token: str) -> RefreshResult:
        return await self._guard("refresh", self._refresh(refresh_token))

    async def _refresh(self, refresh_token) -> RefreshResult:
        if not isinstance(refresh_token, str) or not refresh_token:
            raise InvalidToken()
        token_hash = hash_refresh_token(refresh_token)
        now = self.clock()

        async with self.database.transaction() as session:
            sessions = self._sessions(session)
            record = await sessions.find_by_hash(token_hash)
            if record is None or not record.is_usable(now):
                raise InvalidToken()
            identity = await CredentialStore(session).find_by_id(record.identity_id)
            if identity is None or not identity.is_active:
                raise InvalidToken()

            if not self.settings.refresh_token_rotation:
                access_token = self.issuer.issue_access_token(identity.id, record.id, now)
                return RefreshResult(access_token=access_token)

            # Conditional revoke: a concurrent refresh with the same token loses here
            if not await sessions.revoke(identity.id, token_hash, now):
                raise InvalidToken()
            tokens = self.issuer.issue(identity.id, now)
            await sessions.save(tokens.session)

        logger.info("refresh_token_rotated", identity_id=identity.id, session_id=tokens.session.id)
        return RefreshResult(access_token=tokens.access_token, refresh_token=tokens.refresh_token)

    async def logout(self, credential: str) -> bool:
        """
        Revoke the session tied to an access token (its sid) or a refresh token.

        Idempotent: logging out an already revoked or unknown session is not an error.
        An expired access token still identifies its session here.

        Returns:
            True if this call revoked a session
        """
        return await self._guard("logout", self._logout(credential))

    async def _logout(self, credential) -> bool:
        if not isinstance(credential, str) or not credential:
            raise InvalidToken()

        async with self.database.transaction() as session:
            sessions = self._sessions(session)
            if self.issuer.looks_like_access_token(credential):
                claims = self.issuer.verify_access_token(credential, allow_expired=True)
                if not claims.sid:
                    return False
                identity_id = claims.sub
                revoked = await sessions.revoke_by_id(identity_id, claims.sid, self.clock())
            else:
                token_hash = hash_refresh_token(credential)
                record = await sessions.find_by_hash(token_hash)
                if record is None:
                    return False
                identity_id = record.identity_id
                revoked = await sessions.revoke(identity_id, token_hash, self.clock())

        logger.info("logout", identity_id=identity_id, revoked=revoked)
        return revoked

    async def logout_all(self, identity_id: str) -> int:
        return await self._guard("logout_all", self._logout_all(identity_id))

    async def _logout_all(self, identity_id) -> int:
        async with self.database.transaction() as session:
            revoked = await self._sessions(session).revoke_all(identity_id, self.clock())
        logger.info("logout_all", identity_id=identity_id, revoked=revoked)
        return revoked

    async def withdraw(self, identity_id: str) -> int:
        """Soft-delete the identity and revoke every session in one transaction."""
        return await self._guard("withdraw", self._withdraw(identity_id))

    async def _withdraw(self, identity_id) -> int:
        now = self.clock()
        async with self.database.transaction() as session:
            await CredentialStore(session).set_active(identity_id, False, now)
            revoked = await self._sessions(session).revoke_all(identity_id, now)
        logger.info("identity_withdrawn", identity_id=identity_id, sessions_revoked=revoked)
        return revoked

    async def forgot_password_send(self, email: str) -> ResetDispatch:
        return await self._guard("forgot_password_send", self._forgot_send(email))

    async def _forgot_send(self, email) -> ResetDispatch:
        return await self.reset.send(self._check_email(email))

    async def forgot_password_verify(self, email: str, code: str, new_password: str) -> ResetOutcome:
        return await self._guard(
            "forgot_password_verify", self._forgot_verify(email, code, new_password)
        )

    async def _forgot_verify(self, email, code, new_password) -> ResetOutcome:
        email = self._check_email(email)
        new_password = self._check_new_password(new_password, field="newPassword")
        return await self.reset.verify_and_reset(email, code, new_password)

    async def change_password(self, identity_id: str, current_password: str, new_password: str) -> None:
        return await self._guard(
            "change_password", self._change_password(identity_id, current_password, new_password)
        )

    async def _change_password(self, identity_id, current_password, new_password) -> None:
        new_password = self._check_new_password(new_password, field="newPassword")

        async with self.database.session() as session:
            stored_hash = await CredentialStore(session).get_password_hash(identity_id)
        if stored_hash is None:
            raise UserNotFound()
        if not isinstance(current_password, str) or not await asyncio.to_thread(
            verify_password, current_password, stored_hash
        ):
            logger.info("password_change_rejected", identity_id=identity_id)
            raise InvalidCredentials("Current password is incorrect")

        new_hash = await asyncio.to_thread(hash_password, new_password)
        async with self.database.transaction() as session:
            await CredentialStore(session).set_password_hash(identity_id, new_hash)
        logger.info("password_changed", identity_id=identity_id)

    async def get_identity(self, identity_id: str) -> Identity:
        return await self._guard("get_identity", self._get_identity(identity_id))

    async def _get_identity(self, identity_id) -> Identity:
        async with self.database.session() as session:
            identity = await CredentialStore(session).find_by_id(identity_id)
        if identity is None or not identity.is_active:
            raise UserNotFound()
        return identity

    async def authorize(self, authorization: Optional[str]) -> IdentityContext:
        """Request Authorizer behind the same error boundary as every operation."""
        return await self._guard("authorize", self.authorizer.authorize(authorization))
