"""
Authentication core.

Provides:
- CredentialStore: identities, password hashes, activation state
- TokenIssuer: signed access tokens and hashed opaque refresh tokens
- SessionStore: refresh sessions, revocation
- PasswordResetCoordinator: time-boxed reset codes with cooldown
- RequestAuthorizer: bearer token -> identity context
- AuthService: the orchestrator composing all of the above
"""

from trailauth.auth.authorizer import IdentityContext, RequestAuthorizer
from trailauth.auth.credentials import CredentialStore
from trailauth.auth.jwt import IssuedTokens, TokenIssuer, hash_refresh_token
from trailauth.auth.password_reset import PasswordResetCoordinator
from trailauth.auth.service import AuthResult, AuthService, RefreshResult
from trailauth.auth.sessions import SessionStore

__all__ = [
    "AuthResult",
    "AuthService",
    "CredentialStore",
    "IdentityContext",
    "IssuedTokens",
    "PasswordResetCoordinator",
    "RefreshResult",
    "RequestAuthorizer",
    "SessionStore",
    "TokenIssuer",
    "hash_refresh_token",
]
