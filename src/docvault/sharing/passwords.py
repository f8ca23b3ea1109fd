"""Share-link password hashing.

``share_grants.password_hash`` holds an Argon2id PHC string produced by
``argon2.PasswordHasher``; the hasher draws a fresh salt for every hash, so
equal passwords on two grants never share a verifier.

Both functions are CPU- and memory-bound. Async callers run them in an
executor (see ``ShareLinkManager``).
"""

from __future__ import annotations

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

_PASSWORD_HASHER = PasswordHasher(
    time_cost=2,
    memory_cost=65536,
    parallelism=1,
    hash_len=32,
    salt_len=16,
)


def hash_password(password: str) -> str:
    return _PASSWORD_HASHER.hash(password)


def verify_password(password: str, stored: str | None) -> bool:
    """Return True if ``password`` matches the stored verifier.

    Missing or malformed verifiers never match.
    """
    if not stored or not password:
        return False
    try:
        return _PASSWORD_HASHER.verify(stored, password)
    except (VerificationError, InvalidHashError):
        return False
