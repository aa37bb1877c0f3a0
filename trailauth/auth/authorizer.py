"""
Request Authorizer.

Stateless check run on every protected call: bearer token in, identity
context or rejection out. It only reads the identities table, so running
it twice (gateway and in-process) on the same token and store state gives
the same answer.
"""

from dataclasses import asdict, dataclass
from typing import Any, Mapping, Optional

from trailauth.auth.credentials import CredentialStore
from trailauth.auth.jwt import TokenIssuer
from trailauth.core.database import Database
from trailauth.core.errors import AuthError, Forbidden, InvalidToken, Unauthorized
from trailauth.core.logging import get_logger

logger = get_logger(__name__)

BEARER_SCHEME = "bearer"


@dataclass(frozen=True)
class IdentityContext:
    """What downstream handlers get to know about the caller."""
    identity_id: str
    email: str
    nickname: Optional[str]
    session_id: Optional[str] = None

    def public(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("session_id")
        return data


def extract_bearer_token(authorization: Optional[str]) -> str:
    """
    Pull the token out of an Authorization header value.

    Raises:
        Unauthorized: Header missing or not a Bearer credential
        InvalidToken: Bearer scheme with an empty token
    """
    if not authorization or not authorization.strip():
        raise Unauthorized()
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != BEARER_SCHEME:
        raise Unauthorized()
    token = token.strip()
    if not token:
        raise InvalidToken()
    return token


class RequestAuthorizer:
    def __init__(self, database: Database, issuer: TokenIssuer):
        self.database = database
        self.issuer = issuer

    async def authorize(self, authorization: Optional[str]) -> IdentityContext:
        """
        Verify the bearer token and confirm its identity is still active.

        Raises:
            Unauthorized: No bearer token
            TokenExpired: Token past its expiry
            InvalidToken: Bad signature, claims or format
            Forbidden: Identity missing or deactivated
        """
        token = extract_bearer_token(authorization)
        claims = self.issuer.verify_access_token(token)

        async with self.database.session() as session:
            identity = await CredentialStore(session).find_by_id(claims.sub)

        if identity is None or not identity.is_active:
            logger.info("authorization_denied", identity_id=claims.sub, reason="inactive")
            raise Forbidden()

        return IdentityContext(
            identity_id=identity.id,
            email=identity.email,
            nickname=identity.nickname,
            session_id=claims.sid,
        )

    async def simple_response(self, headers: Mapping[str, str]) -> dict[str, Any]:
        """
        Gateway authorizer form: {"isAuthorized": bool, "context"?: {...}}.

        Header lookup is case-insensitive. Only taxonomy errors become a
        denial; anything else propagates to the gateway.
        """
        authorization = next(
            (value for key, value in headers.items() if key.lower() == "authorization"),
            None,
        )
        try:
            context = await self.authorize(authorization)
        except AuthError as exc:
            return {"isAuthorized": False, "reason": exc.error_code}
        return {"isAuthorized": True, "context": context.public()}
