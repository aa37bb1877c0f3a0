"""
Password hashing with Argon2id.

Hashes embed algorithm, parameters and a random salt, so verification never
needs anything but the stored string. Cost parameters default to ~64 MB /
3 iterations and can be lowered through the environment for test runs.
"""

import os

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

ph = PasswordHasher(
    time_cost=int(os.getenv("PASSWORD_HASH_TIME_COST", "3")),
    memory_cost=int(os.getenv("PASSWORD_HASH_MEMORY_COST", "65536")),
    parallelism=int(os.getenv("PASSWORD_HASH_PARALLELISM", "4")),
    hash_len=32,
    salt_len=16,
)


def hash_password(password: str) -> str:
    """
    Hash a password using Argon2id.

    Args:
        password: The plaintext password to hash

    Returns:
        The encoded hash (algorithm, params, salt and digest)
    """
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify a password against its hash in constant time.

    Args:
        password: The plaintext password to verify
        password_hash: The stored hash to verify against

    Returns:
        True if password matches, False otherwise
    """
    try:
        return ph.verify(password_hash, password)
    except VerifyMismatchError:
        return False
    except (InvalidHashError, VerificationError):
        # Malformed or unverifiable hash counts as a mismatch
        return False


def needs_rehash(password_hash: str) -> bool:
    """True if the hash was made with weaker parameters than the current ones."""
    try:
        return ph.check_needs_rehash(password_hash)
    except InvalidHashError:
        return True
