"""
Token issuance and verification.

- Access tokens: short-lived JWTs (15 min default) signed with the
  process-wide secret; claims carry ids only, never secrets
- Refresh tokens: 64 random bytes, hex encoded, opaque to the client;
  only the SHA-256 digest is persisted
- Issuer, audience and token type are validated on every decode
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from pydantic import BaseModel

from trailauth.core.config import Settings
from trailauth.core.errors import InvalidToken, TokenExpired
from trailauth.core.utils import Clock, new_id, utcnow
from trailauth.models import RefreshSession

REFRESH_TOKEN_BYTES = 64
ACCESS_TOKEN_TYPE = "access"


class AccessTokenClaims(BaseModel):
    """Verified access token payload."""
    sub: str                          # Identity ID (subject)
    sid: Optional[str] = None         # Refresh session the token was minted from
    type: str
    iat: datetime
    exp: datetime
    iss: str
    aud: str
    jti: str


@dataclass(frozen=True)
class IssuedTokens:
    access_token: str
    refresh_token: str
    session: RefreshSession


def hash_refresh_token(refresh_token: str) -> str:
    """One-way digest stored in place of the raw refresh token."""
    return hashlib.sha256(refresh_token.encode("utf-8")).hexdigest()


def generate_refresh_token() -> str:
    return secrets.token_hex(REFRESH_TOKEN_BYTES)


class TokenIssuer:
    """Mints access/refresh token pairs and verifies access tokens."""

    def __init__(self, settings: Settings, clock: Clock = utcnow):
        self.settings = settings
        self.clock = clock

    @property
    def access_token_ttl(self) -> timedelta:
        return timedelta(minutes=self.settings.access_token_expire_minutes)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return timedelta(days=self.settings.refresh_token_expire_days)

    def issue(self, identity_id: str, now: Optional[datetime] = None) -> IssuedTokens:
        """
        Mint a new token pair for an identity.

        The returned session is not yet persisted; the caller saves it
        through the SessionStore inside its own transaction.

        Raises:
            ConfigurationError: If the signing secret is absent
        """
        # Fail before generating anything if we cannot sign
        self.settings.require_signing_secret()
        now = now or self.clock()

        refresh_token = generate_refresh_token()
        session = RefreshSession(
            identity_id=identity_id,
            token_hash=hash_refresh_token(refresh_token),
            issued_at=now,
            expires_at=now + self.refresh_token_ttl,
        )
        # Assign the id now so the access token can reference it before flush
        session.id = new_id()

        access_token = self.issue_access_token(identity_id, session.id, now=now)
        return IssuedTokens(access_token=access_token, refresh_token=refresh_token, session=session)

    def issue_access_token(
        self,
        identity_id: str,
        session_id: Optional[str],
        now: Optional[datetime] = None,
    ) -> str:
        """
        Create a short-lived signed access token.

        Args:
            identity_id: Subject of the token
            session_id: Refresh session the token belongs to (sid claim)
            now: Issue time, defaults to the issuer's clock

        Returns:
            Encoded JWT string
        """
        secret = self.settings.require_signing_secret()
        now = now or self.clock()
        payload = {
            "sub": identity_id,
            "type": ACCESS_TOKEN_TYPE,
            "iat": int(now.timestamp()),
            "exp": int((now + self.access_token_ttl).timestamp()),
            "iss": self.settings.token_issuer,
            "aud": self.settings.token_audience,
            "jti": secrets.token_urlsafe(16),
        }
        if session_id:
            payload["sid"] = session_id
        return jwt.encode(payload, secret, algorithm=self.settings.jwt_algorithm)

    def verify_access_token(self, token: str, allow_expired: bool = False) -> AccessTokenClaims:
        """
        Verify signature, expiry, issuer, audience and type.

        Expiry is checked against the issuer's clock, not the wall clock.
        allow_expired skips only that check; logout uses it so an idle
        client can still end its session.

        Raises:
            TokenExpired: Signature is valid but the token is past exp
            InvalidToken: Anything else wrong with the token
            ConfigurationError: If the signing secret is absent
        """
        secret = self.settings.require_signing_secret()
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self.settings.jwt_algorithm],
                audience=self.settings.token_audience,
                issuer=self.settings.token_issuer,
                options={"verify_exp": False},
            )
        except JWTError as exc:
            raise InvalidToken() from exc

        if payload.get("type") != ACCESS_TOKEN_TYPE or not payload.get("sub"):
            raise InvalidToken()

        try:
            claims = AccessTokenClaims(
                sub=payload["sub"],
                sid=payload.get("sid"),
                type=payload["type"],
                iat=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
                exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
                iss=payload["iss"],
                aud=payload["aud"],
                jti=payload["jti"],
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidToken() from exc

        if not allow_expired and self.clock() >= claims.exp:
            raise TokenExpired()
        return claims

    def looks_like_access_token(self, credential: str) -> bool:
        """JWTs have three dot-separated segments; refresh tokens are plain hex."""
        return credential.count(".") == 2
