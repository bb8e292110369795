"""
auth/session.py -- Session lifecycle: login, validation, refresh, revocation.

State machine over an account's refresh pair (refresh_token, refresh_token_expires_at):

    NoSession (both None) --login--> Active (both set)
    Active --login--> Active (overwritten; the previous refresh token dies)
    Active --logout / force_logout / change_password / reset_password--> NoSession
    Active --deactivation (AccountStore.set_active)--> NoSession

Access tokens are stateless: validate_access_token() re-reads the live
account on every call, so deactivation takes effect immediately even for an
unexpired token. Refresh tokens are stateful: refresh() requires the
presented value to equal the stored one, so clearing the stored value
revokes the token immediately.

Every mutation is a single AccountStore write. There is no multi-step
transaction; a caller that disconnects mid-request cannot observe a
half-applied change.

Password hashing and token signing block the calling thread. The FastAPI
routes that call this service are plain `def` handlers and therefore run in
the framework's worker thread pool, never on the event loop.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from auth.models import Account
from auth.passwords import PasswordHasher
from auth.store import AccountStore, normalize_username
from auth.tokens import TokenCodec, utcnow
from core.config import Settings
from core.errors import (
    AccountNotFoundError,
    InvalidCredentialsError,
    NotFoundError,
    TokenRevokedError,
    ValidationError,
)

logger = logging.getLogger("storefront.auth.session")

MAX_PASSWORD_LENGTH = 255


@dataclass(frozen=True)
class LoginResult:
    access_token: str
    refresh_token: str
    account: Account


@dataclass(frozen=True)
class RefreshResult:
    access_token: str
    account: Account


def _token_payload(account: Account) -> dict:
    return {
        "id": account.id,
        "username": account.username,
        "role": account.role,
        "profile_id": account.profile_id,
    }


class SessionService:
    """Orchestrates the credential store, password hasher and token codec."""

    def __init__(
        self,
        store: AccountStore,
        codec: TokenCodec,
        hasher: PasswordHasher,
        access_ttl: timedelta,
        refresh_ttl: timedelta,
        min_password_length: int = 6,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.codec = codec
        self.hasher = hasher
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.min_password_length = min_password_length
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, store: AccountStore) -> SessionService:
        """Construct the service and its collaborators from settings."""
        codec = TokenCodec(
            settings.secret_key,
            issuer=settings.jwt_issuer,
            leeway_seconds=settings.token_leeway_seconds,
        )
        return cls(
            store=store,
            codec=codec,
            hasher=PasswordHasher(rounds=settings.bcrypt_rounds),
            access_ttl=timedelta(seconds=settings.access_token_expire_seconds),
            refresh_ttl=timedelta(seconds=settings.refresh_token_expire_seconds),
            min_password_length=settings.min_password_length,
        )

    # ------------------------------------------------------------------
    # Login / validation / refresh
    # ------------------------------------------------------------------

    def login(self, username: str, password: str) -> LoginResult:
        """Check credentials, issue both tokens, and persist the refresh token.

        Unknown username, inactive account and wrong password all raise the
        same InvalidCredentialsError. bcrypt runs exactly once on every path
        so response time does not reveal which case occurred.
        """
        if not username or not username.strip():
            raise ValidationError("Username and password are required.", field="username")
        if not password or not password.strip():
            raise ValidationError("Username and password are required.", field="password")

        normalized = normalize_username(username)
        account = self.store.get_by_username(normalized, active_only=True)
        if account is None:
            self.hasher.verify_dummy(password)
            logger.warning("Login failed for username=%s", normalized)
            raise InvalidCredentialsError()
        if not self.hasher.verify(password, account.hashed_password):
            logger.warning("Login failed for username=%s", normalized)
            raise InvalidCredentialsError()

        payload = _token_payload(account)
        access_token = self.codec.issue(payload, self.access_ttl)
        refresh_token = self.codec.issue(payload, self.refresh_ttl)
        expires_at = self.codec.decode(refresh_token).expires_at

        self.store.start_session(account.id, refresh_token, expires_at)
        account.refresh_token = refresh_token
        account.refresh_token_expires_at = expires_at
        logger.info("Login succeeded account_id=%s role=%s", account.id, account.role.value)
        return LoginResult(access_token=access_token, refresh_token=refresh_token, account=account)

    def validate_access_token(self, token: str) -> Account:
        """Verify the token and return the LIVE account it names.

        Raises TokenExpiredError / InvalidTokenError from the codec, or
        AccountNotFoundError when the account was deleted or deactivated
        after the token was issued.
        """
        claims = self.codec.verify(token)
        account = self.store.get_by_id(claims.subject)
        if account is None or not account.is_active:
            raise AccountNotFoundError(claims.subject)
        return account

    def refresh(self, refresh_token: str) -> RefreshResult:
        """Exchange a live refresh token for a new access token.

        The refresh token itself is not rotated. It is accepted only while it
        is byte-for-byte the value stored on the account and that stored
        session has not expired.
        """
        claims = self.codec.verify(refresh_token)
        account = self.store.get_by_id(claims.subject)
        if account is None or not account.is_active:
            logger.warning("Refresh rejected: account %s missing or inactive", claims.subject)
            raise AccountNotFoundError(claims.subject)
        if account.refresh_token is None or account.refresh_token != refresh_token:
            logger.warning("Refresh rejected: token does not match stored session for account_id=%s", account.id)
            raise TokenRevokedError()
        cutoff = self._clock() - timedelta(seconds=self.codec.leeway)
        if account.refresh_token_expires_at is None or account.refresh_token_expires_at <= cutoff:
            logger.warning("Refresh rejected: stored session expired for account_id=%s", account.id)
            raise TokenRevokedError()

        access_token = self.codec.issue(_token_payload(account), self.access_ttl)
        return RefreshResult(access_token=access_token, account=account)

    # ------------------------------------------------------------------
    # Revocation
    # ------------------------------------------------------------------

    def logout(self, account_id: str) -> None:
        """Clear the caller's refresh pair. Safe to call repeatedly."""
        self.store.clear_session(account_id)
        logger.info("Logout account_id=%s", account_id)

    def force_logout(self, account_id: str) -> Account:
        """Admin-initiated logout. Same transition as logout(); unknown ids raise NotFoundError."""
        if not self.store.clear_session(account_id):
            raise NotFoundError("Account", account_id)
        logger.info("Forced logout account_id=%s", account_id)
        return self.store.get_by_id(account_id)

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    def change_password(self, account_id: str, current_password: str, new_password: str) -> Account:
        """Re-hash after checking the current password; revokes the refresh token."""
        account = self.store.get_by_id(account_id)
        if account is None:
            raise NotFoundError("Account", account_id)
        if not self.hasher.verify(current_password or "", account.hashed_password):
            raise ValidationError(
                "Incorrect current password.",
                field="currentPassword",
                reason="incorrect_password",
            )
        self._check_new_password(new_password, field="newPassword")
        if new_password == current_password:
            raise ValidationError(
                "New password must be different from current password.",
                field="newPassword",
                reason="unchanged",
            )

        self.store.update_password(account_id, self.hasher.hash(new_password))
        logger.info("Password changed account_id=%s; session revoked", account_id)
        return self.store.get_by_id(account_id)

    def reset_password(self, account_id: str, new_password: str) -> Account:
        """Admin password reset: no current password required; revokes the refresh token."""
        self._check_new_password(new_password, field="newPassword")
        if self.store.get_by_id(account_id) is None:
            raise NotFoundError("Account", account_id)

        self.store.update_password(account_id, self.hasher.hash(new_password))
        logger.info("Password reset account_id=%s; session revoked", account_id)
        return self.store.get_by_id(account_id)

    def _check_new_password(self, new_password: str | None, *, field: str) -> None:
        length = len(new_password or "")
        if length < self.min_password_length:
            raise ValidationError(
                f"Password must be at least {self.min_password_length} characters.",
                field=field,
                min_length=self.min_password_length,
                actual_length=length,
            )
        if length > MAX_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password cannot exceed {MAX_PASSWORD_LENGTH} characters.",
                field=field,
                max_length=MAX_PASSWORD_LENGTH,
                actual_length=length,
            )

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def get_profile(self, account_id: str) -> Account:
        account = self.store.get_by_id(account_id)
        if account is None:
            raise NotFoundError("Account", account_id)
        return account
