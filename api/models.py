"""
API request and response models for Storefront auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

The wire format is camelCase (accessToken, currentPassword, ...). Models
accept both the camelCase alias and the Python field name on input and
FastAPI serializes responses by alias.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from auth.models import Account, Identity, Role

_PASSWORD_MAX = 255


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _FrozenCamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(_CamelModel):
    """Request body for POST /api/v1/auth/login.

    The username is trimmed and lowercased here as well as in the store, so
    validation errors report the normalized value. The password is never
    stripped -- leading/trailing spaces are part of the secret.
    """

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)

    @field_validator("username")
    @classmethod
    def normalize_username(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError("Username is required")
        return normalized


class RefreshRequest(_CamelModel):
    refresh_token: str = Field(min_length=1)


class ChangePasswordRequest(_CamelModel):
    current_password: str = Field(min_length=1, max_length=_PASSWORD_MAX)
    new_password: str = Field(min_length=1, max_length=_PASSWORD_MAX)


class ResetPasswordRequest(_CamelModel):
    new_password: str = Field(min_length=1, max_length=_PASSWORD_MAX)


class RoleUpdate(_CamelModel):
    role: Role


class StatusUpdate(_CamelModel):
    is_active: bool


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AccountResponse(_FrozenCamelModel):
    """Public view of an account. Never includes the hash or the refresh token."""

    id: str
    username: str
    role: Role
    is_active: bool
    profile_id: str
    created_at: str = ""
    last_login: Optional[str] = None

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        return cls(
            id=account.id,
            username=account.username,
            role=account.role,
            is_active=account.is_active,
            profile_id=account.profile_id,
            created_at=account.created_at or "",
            last_login=account.last_login,
        )


class IdentityResponse(_FrozenCamelModel):
    id: str
    username: str
    role: Role
    profile_id: str

    @classmethod
    def from_identity(cls, identity: Identity) -> "IdentityResponse":
        return cls(id=identity.id, username=identity.username, role=identity.role, profile_id=identity.profile_id)


class LoginResponse(_FrozenCamelModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: AccountResponse


class RefreshResponse(_FrozenCamelModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class UserEnvelope(_FrozenCamelModel):
    user: AccountResponse


class IdentityEnvelope(_FrozenCamelModel):
    identity: IdentityResponse


class SessionStatusResponse(_FrozenCamelModel):
    authenticated: bool
    identity: Optional[IdentityResponse] = None


class MessageResponse(_FrozenCamelModel):
    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    message: str
    code: str
    details: Optional[dict | list] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
