import hashlib

import pytest
from jose import jwt

from trailauth.auth.jwt import TokenIssuer, hash_refresh_token
from trailauth.core.errors import ConfigurationError, InvalidToken, TokenExpired

from conftest import TEST_SECRET, make_settings


@pytest.fixture
def issuer(settings, clock):
    return TokenIssuer(settings, clock)


def test_issue_returns_pair_and_unsaved_session(issuer, clock):
    tokens = issuer.issue("identity-1")

    assert tokens.access_token.count(".") == 2
    # 64 random bytes, hex encoded
    assert len(tokens.refresh_token) == 128
    int(tokens.refresh_token, 16)

    session = tokens.session
    assert session.identity_id == "identity-1"
    assert session.issued_at == clock.now
    assert (session.expires_at - session.issued_at).days == 7
    assert session.revoked_at is None


def test_only_the_refresh_token_hash_is_kept(issuer):
    tokens = issuer.issue("identity-1")

    expected = hashlib.sha256(tokens.refresh_token.encode()).hexdigest()
    assert tokens.session.token_hash == expected
    assert hash_refresh_token(tokens.refresh_token) == tokens.session.token_hash
    assert tokens.refresh_token not in tokens.session.token_hash


def test_refresh_tokens_are_independent_of_access_tokens(issuer):
    first = issuer.issue("identity-1")
    second = issuer.issue("identity-1")

    assert first.refresh_token != second.refresh_token
    assert first.session.token_hash != second.session.token_hash
    assert first.refresh_token not in first.access_token


def test_access_token_claims(issuer):
    tokens = issuer.issue("identity-1")
    claims = issuer.verify_access_token(tokens.access_token)

    assert claims.sub == "identity-1"
    assert claims.sid == tokens.session.id
    assert claims.type == "access"
    assert claims.iss == "trailauth"
    assert claims.aud == "trailauth-mobile"
    assert (claims.exp - claims.iat).total_seconds() == 15 * 60


def test_access_token_payload_has_no_secrets(issuer):
    tokens = issuer.issue("identity-1")
    payload = jwt.get_unverified_claims(tokens.access_token)

    assert set(payload) == {"sub", "sid", "type", "iat", "exp", "iss", "aud", "jti"}


def test_expired_access_token(issuer, clock):
    token = issuer.issue_access_token("identity-1", "session-1")
    clock.advance(minutes=15, seconds=1)

    with pytest.raises(TokenExpired):
        issuer.verify_access_token(token)

    claims = issuer.verify_access_token(token, allow_expired=True)
    assert claims.sid == "session-1"


def test_tampered_access_token(issuer):
    token = issuer.issue_access_token("identity-1", "session-1")
    header, payload, signature = token.split(".")
    tampered = ".".join([header, payload, signature[::-1]])

    with pytest.raises(InvalidToken):
        issuer.verify_access_token(tampered)


def test_token_signed_with_another_secret(tmp_path, clock):
    other = TokenIssuer(make_settings(tmp_path, jwt_secret_key="another-secret"), clock)
    mine = TokenIssuer(make_settings(tmp_path), clock)
    token = other.issue_access_token("identity-1", "session-1")

    with pytest.raises(InvalidToken):
        mine.verify_access_token(token)


def test_wrong_token_type_is_rejected(issuer, clock):
    now = int(clock.now.timestamp())
    forged = jwt.encode(
        {
            "sub": "identity-1",
            "type": "refresh",
            "iat": now,
            "exp": now + 60,
            "iss": "trailauth",
            "aud": "trailauth-mobile",
            "jti": "x",
        },
        TEST_SECRET,
        algorithm="HS256",
    )

    with pytest.raises(InvalidToken):
        issuer.verify_access_token(forged)


def test_garbage_is_invalid(issuer):
    with pytest.raises(InvalidToken):
        issuer.verify_access_token("not-a-jwt")


def test_missing_secret_is_fatal(tmp_path, clock):
    issuer = TokenIssuer(make_settings(tmp_path, jwt_secret_key=None), clock)

    with pytest.raises(ConfigurationError):
        issuer.issue("identity-1")
    with pytest.raises(ConfigurationError):
        issuer.verify_access_token("a.b.c")
