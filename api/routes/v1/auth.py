"""
api/routes/v1/auth.py -- Session REST endpoints.

Routes:
  POST  /api/v1/auth/login            -- username/password -> access + refresh tokens
  GET   /api/v1/auth/profile          -- current account (requires auth)
  PATCH /api/v1/auth/change-password  -- re-hash + revoke refresh token (requires auth)
  GET   /api/v1/auth/validate         -- echo the live identity (requires auth)
  POST  /api/v1/auth/refresh          -- refresh token -> new access token
  POST  /api/v1/auth/logout           -- revoke refresh token (requires auth)
  GET   /api/v1/auth/session          -- identity if a valid token is sent, else anonymous

Security:
  POST /login and POST /refresh are rate-limited per client IP.
  Wrong username and wrong password produce the same INVALID_CREDENTIALS
  error (see SessionService.login) to avoid leaking username existence.
  Token-bearing responses carry Cache-Control: no-store.

Handlers are plain `def`: bcrypt and JWT signing block, so FastAPI runs
them in its thread pool and the event loop stays free.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import limiter
from api.models import (
    AccountResponse,
    ChangePasswordRequest,
    IdentityEnvelope,
    IdentityResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RefreshRequest,
    RefreshResponse,
    SessionStatusResponse,
    UserEnvelope,
)
from auth.dependencies import authenticate, optional_authenticate
from auth.models import Identity
from auth.session import SessionService
from core.config import get_settings

_settings = get_settings()

# Auth policy:
# - POST  /api/v1/auth/login:            public
# - POST  /api/v1/auth/refresh:          public -- the refresh token is the credential
# - GET   /api/v1/auth/session:          public, personalized when a token is present
# - GET   /api/v1/auth/profile:          requires auth (authenticate)
# - PATCH /api/v1/auth/change-password:  requires auth (authenticate)
# - GET   /api/v1/auth/validate:         requires auth (authenticate)
# - POST  /api/v1/auth/logout:           requires auth (authenticate)
router = APIRouter()


def _access_ttl_seconds(sessions: SessionService) -> int:
    return int(sessions.access_ttl.total_seconds())


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_settings.login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, response: Response, body: LoginRequest) -> LoginResponse:
    """Authenticate with username and password; return both tokens and the account."""
    sessions: SessionService = request.app.state.sessions
    result = sessions.login(body.username, body.password)
    response.headers["Cache-Control"] = "no-store"
    return LoginResponse(
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        expires_in=_access_ttl_seconds(sessions),
        user=AccountResponse.from_account(result.account),
    )


@limiter.limit(_settings.login_rate_limit)
@router.post("/auth/refresh", response_model=RefreshResponse)
def refresh(request: Request, response: Response, body: RefreshRequest) -> RefreshResponse:
    """Exchange the current refresh token for a new access token.

    Expired, invalid and revoked refresh tokens all return 401; the error
    code (TOKEN_EXPIRED, INVALID_TOKEN, TOKEN_REVOKED, ACCOUNT_NOT_FOUND)
    tells the client which one it hit.
    """
    sessions: SessionService = request.app.state.sessions
    result = sessions.refresh(body.refresh_token)
    response.headers["Cache-Control"] = "no-store"
    return RefreshResponse(access_token=result.access_token, expires_in=_access_ttl_seconds(sessions))


@router.get("/auth/session", response_model=SessionStatusResponse)
def session_status(identity: Identity | None = Depends(optional_authenticate)) -> SessionStatusResponse:
    """Report whether the caller is signed in. Never returns 401."""
    if identity is None:
        return SessionStatusResponse(authenticated=False)
    return SessionStatusResponse(authenticated=True, identity=IdentityResponse.from_identity(identity))


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/profile", response_model=UserEnvelope)
def profile(request: Request, identity: Identity = Depends(authenticate)) -> UserEnvelope:
    """Return the current account."""
    sessions: SessionService = request.app.state.sessions
    return UserEnvelope(user=AccountResponse.from_account(sessions.get_profile(identity.id)))


@router.patch("/auth/change-password", response_model=MessageResponse)
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    identity: Identity = Depends(authenticate),
) -> MessageResponse:
    """Change the caller's password. Every other session must log in again."""
    sessions: SessionService = request.app.state.sessions
    sessions.change_password(identity.id, body.current_password, body.new_password)
    return MessageResponse(message="Password changed successfully.")


@router.get("/auth/validate", response_model=IdentityEnvelope)
def validate(identity: Identity = Depends(authenticate)) -> IdentityEnvelope:
    """Return the identity behind the presented access token."""
    return IdentityEnvelope(identity=IdentityResponse.from_identity(identity))


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, identity: Identity = Depends(authenticate)) -> MessageResponse:
    """Revoke the caller's refresh token. The access token lives until it expires."""
    sessions: SessionService = request.app.state.sessions
    sessions.logout(identity.id)
    return MessageResponse(message="Logged out.")
