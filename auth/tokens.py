"""
auth/tokens.py -- JWT issuance and verification.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       sub (account id), username, role, profile_id, iss, iat, exp and a
       random jti. Access and refresh tokens share this format and differ only
       in lifetime; the refresh token's raw value is additionally persisted on
       the account (see auth/session.py) so it can be revoked.

  Expiry is checked here against the injected clock rather than inside
       jose.jwt.decode(). That keeps the two failure kinds cleanly apart:
       anything wrong with signature, issuer or shape is InvalidTokenError;
       a correctly signed token past its exp is always TokenExpiredError.
       Callers react differently (silent refresh vs. forced re-login).

  decode() skips verification entirely. Its only legitimate use is reading
       the exp of a token this process just issued. Never base a trust
       decision on it.

Layer rule: no imports from api/. Imports from core/ are allowed.
"""

from __future__ import annotations

import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from auth.models import Role, TokenClaims
from core.errors import InvalidTokenError, TokenExpiredError

ALGORITHM = "HS256"

_REQUIRED_CLAIMS = ("sub", "username", "role", "profile_id", "iss", "iat", "exp", "jti")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenCodec:
    """Create and verify compact signed tokens.

    Usage:
        codec = TokenCodec(secret_key, issuer="storefront")
        token = codec.issue({"id": "...", "username": "alice", "role": "client",
                             "profile_id": "..."}, timedelta(minutes=15))
        claims = codec.verify(token)
    """

    def __init__(
        self,
        secret_key: str,
        issuer: str,
        leeway_seconds: int = 0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._secret_key = secret_key
        self.issuer = issuer
        self.leeway = leeway_seconds
        self._clock = clock

    def issue(self, payload: dict[str, Any], lifetime: timedelta) -> str:
        """Sign payload with iss, iat, exp = now + lifetime, and a fresh jti.

        payload must provide id, username, role and profile_id. A negative
        lifetime yields an already-expired token (useful in tests).
        """
        now = self._clock()
        role = payload["role"]
        claims = {
            "sub": str(payload["id"]),
            "username": payload["username"],
            "role": role.value if isinstance(role, Role) else str(role),
            "profile_id": str(payload["profile_id"]),
            "iss": self.issuer,
            "iat": now,
            "exp": now + lifetime,
            "jti": secrets.token_hex(16),
        }
        return jwt.encode(claims, self._secret_key, algorithm=ALGORITHM)

    def verify(self, token: str) -> TokenClaims:
        """Check signature, issuer and shape, then expiry.

        Raises InvalidTokenError or TokenExpiredError.
        """
        try:
            raw = jwt.decode(
                token,
                self._secret_key,
                algorithms=[ALGORITHM],
                issuer=self.issuer,
                options={"verify_exp": False, "verify_aud": False},
            )
        except JWTError as exc:
            raise InvalidTokenError() from exc

        claims = _to_claims(raw)
        now = self._clock()
        if claims.expires_at <= now - timedelta(seconds=self.leeway):
            raise TokenExpiredError()
        return claims

    def decode(self, token: str) -> TokenClaims:
        """Read claims WITHOUT verifying signature, issuer or expiry."""
        try:
            raw = jwt.get_unverified_claims(token)
        except JWTError as exc:
            raise InvalidTokenError("Failed to decode token.") from exc
        return _to_claims(raw)


def _to_claims(raw: dict[str, Any]) -> TokenClaims:
    missing = [name for name in _REQUIRED_CLAIMS if name not in raw]
    if missing:
        raise InvalidTokenError(f"Token is missing claims: {', '.join(missing)}.")
    try:
        return TokenClaims(
            subject=str(raw["sub"]),
            username=str(raw["username"]),
            role=Role(raw["role"]),
            profile_id=str(raw["profile_id"]),
            issuer=str(raw["iss"]),
            issued_at=datetime.fromtimestamp(int(raw["iat"]), tz=timezone.utc),
            expires_at=datetime.fromtimestamp(int(raw["exp"]), tz=timezone.utc),
            token_id=str(raw["jti"]),
        )
    except (TypeError, ValueError, OverflowError) as exc:
        raise InvalidTokenError() from exc
