"""
auth/passwords.py -- bcrypt password hashing with timing equalization.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error. Direct bcrypt usage is simpler and has no
compatibility shim.

The hasher is an explicitly constructed object so the cost factor comes from
configuration and tests can run with the minimum cost (rounds=4).
"""

from __future__ import annotations

import bcrypt

# bcrypt silently ignores everything after the 72nd byte.
_BCRYPT_MAX_BYTES = 72


class PasswordHasher:
    """Hash and verify passwords with a fixed bcrypt cost factor.

    dummy_hash is computed once at construction so that a login attempt for
    an unknown username can still run one full bcrypt check (see
    verify_dummy()). Response time then does not reveal whether the
    username exists.
    """

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        self.dummy_hash = self.hash("storefront_timing_dummy")

    def hash(self, plain: str) -> str:
        """Return a bcrypt hash of the given plaintext password."""
        pw_bytes = plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]
        return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, hashed: str | None) -> bool:
        """Return True if the plaintext password matches the bcrypt hash.

        A missing or malformed stored hash is a mismatch, not an error.
        """
        if not hashed:
            return False
        try:
            return bcrypt.checkpw(plain.encode("utf-8")[:_BCRYPT_MAX_BYTES], hashed.encode("utf-8"))
        except (ValueError, TypeError):
            return False

    def verify_dummy(self, plain: str) -> None:
        """Burn one bcrypt check against the dummy hash. Result is always ignored."""
        self.verify(plain, self.dummy_hash)
