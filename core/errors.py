"""
core/errors.py -- Typed operational errors shared by auth/ and api/.

Every expected failure (bad credentials, expired token, missing permission)
is an AppError subclass carrying the HTTP status, a stable machine-readable
code, and optional structured details. api/main.py translates any AppError
into the {"error": {"message", "code", "details"}} envelope. Anything that is
NOT an AppError is a programming defect and surfaces as a 500.

Class hierarchy:
  AppError
    InvalidCredentialsError      401 INVALID_CREDENTIALS
    MissingTokenError            401 MISSING_TOKEN
    TokenExpiredError            401 TOKEN_EXPIRED
    InvalidTokenError            401 INVALID_TOKEN
      TokenRevokedError          401 TOKEN_REVOKED
    AccessDeniedError            403 ACCESS_DENIED
    NotFoundError                404 <ENTITY>_NOT_FOUND
      AccountNotFoundError       401 ACCOUNT_NOT_FOUND
    ValidationError              400 VALIDATION_ERROR

Layer rule: core/ is the kernel. No imports from api/ or auth/.
"""

from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Base class for expected, typed failures."""

    status_code: int = 500
    code: str = "APP_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "code": self.code, "details": self.details}


class InvalidCredentialsError(AppError):
    """Unknown username and wrong password are deliberately indistinguishable."""

    status_code = 401
    code = "INVALID_CREDENTIALS"

    def __init__(self) -> None:
        super().__init__("Invalid username or password.")


class MissingTokenError(AppError):
    status_code = 401
    code = "MISSING_TOKEN"

    def __init__(self) -> None:
        super().__init__("Access token required.")


class TokenExpiredError(AppError):
    """Signature is good but exp has passed. Access: refresh. Refresh: re-login."""

    status_code = 401
    code = "TOKEN_EXPIRED"

    def __init__(self) -> None:
        super().__init__("Authentication token has expired.")


class InvalidTokenError(AppError):
    """Malformed, badly signed, or foreign-issuer token. Never auto-retried."""

    status_code = 401
    code = "INVALID_TOKEN"

    def __init__(self, message: str = "Invalid authentication token.") -> None:
        super().__init__(message)


class TokenRevokedError(InvalidTokenError):
    """A structurally valid refresh token that no longer matches the stored session."""

    code = "TOKEN_REVOKED"

    def __init__(self) -> None:
        super().__init__("Refresh token has been revoked.")


class AccessDeniedError(AppError):
    status_code = 403
    code = "ACCESS_DENIED"

    def __init__(self, reason: str, *, action: str = "access", resource: str = "resource") -> None:
        super().__init__(
            f"Access denied to {action} {resource}: {reason}",
            details={"resource": resource, "action": action, "reason": reason},
        )


class NotFoundError(AppError):
    status_code = 404

    def __init__(self, entity: str, identifier: str | None = None) -> None:
        message = f"{entity} with identifier '{identifier}' not found" if identifier else f"{entity} not found"
        super().__init__(
            message,
            code=f"{entity.upper()}_NOT_FOUND",
            details={"entity": entity, "identifier": identifier},
        )


class AccountNotFoundError(NotFoundError):
    """The token's account is gone or inactive -- treated as session invalidation (401)."""

    status_code = 401

    def __init__(self, identifier: str | None = None) -> None:
        super().__init__("Account", identifier)


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, *, field: str | None = None, **extra: Any) -> None:
        details: dict[str, Any] | None = None
        if field is not None or extra:
            details = {"field": field, **extra}
        super().__init__(message, details=details)
