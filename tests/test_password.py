from trailauth.auth.password import hash_password, needs_rehash, verify_password


def test_hash_is_salted_and_verifies():
    first = hash_password("Passw0rd!")
    second = hash_password("Passw0rd!")

    assert first != second
    assert first.startswith("$argon2id$")
    assert "Passw0rd!" not in first
    assert verify_password("Passw0rd!", first)
    assert verify_password("Passw0rd!", second)


def test_wrong_password_does_not_verify():
    stored = hash_password("Passw0rd!")
    assert not verify_password("wrong", stored)


def test_malformed_hash_is_a_mismatch_and_needs_rehash():
    assert not verify_password("Passw0rd!", "not-a-hash")
    assert needs_rehash("not-a-hash")


def test_fresh_hash_does_not_need_rehash():
    assert not needs_rehash(hash_password("Passw0rd!"))
