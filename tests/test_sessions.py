import pytest

from trailauth.auth.credentials import CredentialStore
from trailauth.auth.jwt import TokenIssuer, hash_refresh_token
from trailauth.auth.sessions import SessionStore
from trailauth.core.errors import RevocationIncomplete, SessionIntegrityError
from trailauth.models import RefreshSession

from conftest import count_usable_sessions


@pytest.fixture
def issuer(settings, clock):
    return TokenIssuer(settings, clock)


async def _identity(database, email="carol@example.com") -> str:
    async with database.transaction() as session:
        identity = await CredentialStore(session).create_identity(email, "hash")
        return identity.id


async def _save(database, issuer, identity_id):
    tokens = issuer.issue(identity_id)
    async with database.transaction() as session:
        await SessionStore(session).save(tokens.session)
    return tokens


async def test_save_and_find_by_hash(database, issuer, clock):
    identity_id = await _identity(database)
    tokens = await _save(database, issuer, identity_id)

    async with database.session() as session:
        found = await SessionStore(session).find_by_hash(hash_refresh_token(tokens.refresh_token))

    assert found.id == tokens.session.id
    assert found.identity_id == identity_id
    assert found.is_usable(clock.now)


async def test_raw_refresh_token_is_not_stored(database, issuer):
    identity_id = await _identity(database)
    tokens = await _save(database, issuer, identity_id)

    async with database.session() as session:
        stored = await SessionStore(session).find_by_hash(tokens.session.token_hash)

    assert stored.token_hash != tokens.refresh_token
    assert tokens.refresh_token not in stored.token_hash


async def test_duplicate_hash_fails_loudly(database, issuer, clock):
    identity_id = await _identity(database)
    tokens = await _save(database, issuer, identity_id)
    clone = RefreshSession(
        identity_id=identity_id,
        token_hash=tokens.session.token_hash,
        issued_at=clock.now,
        expires_at=clock.now,
    )

    with pytest.raises(SessionIntegrityError):
        async with database.transaction() as session:
            await SessionStore(session).save(clone)


async def test_revoke_is_a_no_op_the_second_time(database, issuer, clock):
    identity_id = await _identity(database)
    tokens = await _save(database, issuer, identity_id)
    token_hash = tokens.session.token_hash

    async with database.transaction() as session:
        assert await SessionStore(session).revoke(identity_id, token_hash, clock.now) is True
    first_revoked_at = clock.now
    clock.advance(minutes=1)
    async with database.transaction() as session:
        assert await SessionStore(session).revoke(identity_id, token_hash, clock.now) is False

    async with database.session() as session:
        stored = await SessionStore(session).find_by_hash(token_hash)
    assert stored.revoked_at == first_revoked_at
    assert not stored.is_usable(clock.now)


async def test_revoke_only_touches_the_owner(database, issuer, clock):
    owner = await _identity(database)
    other = await _identity(database, "dave@example.com")
    tokens = await _save(database, issuer, owner)

    async with database.transaction() as session:
        assert not await SessionStore(session).revoke(other, tokens.session.token_hash, clock.now)


async def test_revoke_all(database, issuer, clock):
    identity_id = await _identity(database)
    other_id = await _identity(database, "erin@example.com")
    for _ in range(3):
        await _save(database, issuer, identity_id)
    await _save(database, issuer, other_id)

    async with database.transaction() as session:
        store = SessionStore(session)
        assert await store.revoke_all(identity_id, clock.now) == 3
        assert await store.revoke_all(identity_id, clock.now) == 0

    assert await count_usable_sessions(database, identity_id, clock.now) == 0
    assert await count_usable_sessions(database, other_id, clock.now) == 1


async def test_expired_sessions_are_not_usable(database, issuer, clock):
    identity_id = await _identity(database)
    tokens = await _save(database, issuer, identity_id)

    clock.advance(days=7)
    async with database.session() as session:
        stored = await SessionStore(session).find_by_hash(tokens.session.token_hash)
    assert await count_usable_sessions(database, identity_id, clock.now) == 0
    assert not stored.is_usable(clock.now)


async def test_revoke_all_gives_up_when_sessions_keep_appearing(database, issuer, clock):
    identity_id = await _identity(database)
    await _save(database, issuer, identity_id)
    recounts = []

    async def never_settles(identity_id):
        recounts.append(identity_id)
        return 1

    with pytest.raises(RevocationIncomplete):
        async with database.transaction() as session:
            store = SessionStore(session, max_revoke_attempts=2)
            store.count_unrevoked = never_settles
            await store.revoke_all(identity_id, clock.now)

    assert len(recounts) == 2
    # The failed transaction rolled back, so the session is still live
    assert await count_usable_sessions(database, identity_id, clock.now) == 1
