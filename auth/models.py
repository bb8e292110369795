"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work; these only own the domain shape.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    """Coarse permission tier. An account holds exactly one role."""

    client = "client"
    admin = "admin"


@dataclass
class Account:
    """One credential record per identity.

    username is stored normalized (trimmed, lowercased) -- see
    auth.store.normalize_username().

    profile_id references the person/profile entity owned by another
    subsystem. It is one-to-one and never changes after creation.

    refresh_token / refresh_token_expires_at are the single live session.
    Both are None (no session) or both are set (active session); the store
    never writes one without the other.
    """

    username: str
    profile_id: str
    role: Role = Role.client
    id: str | None = None
    hashed_password: str | None = None
    is_active: bool = True
    refresh_token: str | None = None
    refresh_token_expires_at: datetime | None = None
    created_at: str | None = None
    updated_at: str | None = None
    last_login: str | None = None

    @property
    def has_session(self) -> bool:
        return self.refresh_token is not None


@dataclass(frozen=True)
class Identity:
    """Authenticated identity context handed to downstream handlers."""

    id: str
    username: str
    role: Role
    profile_id: str

    @classmethod
    def from_account(cls, account: Account) -> Identity:
        return cls(
            id=account.id,
            username=account.username,
            role=account.role,
            profile_id=account.profile_id,
        )


@dataclass(frozen=True)
class TokenClaims:
    """Decoded token payload.

    subject is the account id (JWT "sub"). token_id (JWT "jti") makes every
    issued token unique, so two logins in the same second still produce
    different refresh tokens.
    """

    subject: str
    username: str
    role: Role
    profile_id: str
    issuer: str
    issued_at: datetime
    expires_at: datetime
    token_id: str
