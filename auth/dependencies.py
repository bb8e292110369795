"""
auth/dependencies.py -- FastAPI Depends() gates for authentication and authorization.

Gate chain for a protected route:
  authenticate                -- Bearer token -> live Identity (401 on any failure)
  require_role(allowed)       -- identity.role must be in allowed (403 otherwise)
  require_ownership_or_role() -- allowed role, OR the path id is the caller's
                                 own account id or profile id (403 otherwise)

optional_authenticate() is the soft variant for routes that personalize
responses but do not require login: it returns None instead of raising.

The gates that need an identity declare Depends(authenticate) themselves, so
authentication always runs first. FastAPI caches a dependency's result per
request, which means stacking several gates still validates the token once.

Ownership is an O(1) identifier comparison, not a store lookup. It only
protects resources whose identifier IS the account id or the profile id.
Nested resources (an order line under an order) must be resolved to their
owning id by the caller before this gate can be applied.

All gates are plain `def` functions: they perform blocking
store I/O and JWT verification, so FastAPI runs them in its thread pool.

Layer rule: may import from fastapi (this module is part of the DI system)
and from core/. No imports from api/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from fastapi import Depends, Request

from auth.models import Identity, Role
from auth.session import SessionService
from core.errors import AccessDeniedError, AppError, MissingTokenError

logger = logging.getLogger("storefront.auth.dependencies")


def role_allowed(role: Role | str, allowed: Iterable[Role | str]) -> bool:
    """Pure role check: is role a member of allowed?

    Role is a str enum, so members and their string values compare equal.
    Unknown values on either side simply never match.
    """
    return any(role == r for r in allowed)


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _sessions(request: Request) -> SessionService:
    return request.app.state.sessions


def authenticate(request: Request) -> Identity:
    """Require a valid Bearer access token. Raises before the handler runs on failure.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: Identity = Depends(authenticate)): ...
    """
    token = _bearer_token(request)
    if token is None:
        raise MissingTokenError()
    account = _sessions(request).validate_access_token(token)
    identity = Identity.from_account(account)
    request.state.identity = identity
    return identity


def optional_authenticate(request: Request) -> Identity | None:
    """Attach the identity when a valid token is present. Never fails the request."""
    token = _bearer_token(request)
    if token is None:
        return None
    try:
        account = _sessions(request).validate_access_token(token)
    except AppError as exc:
        logger.debug("Ignoring unusable optional token: %s", exc.code)
        return None
    identity = Identity.from_account(account)
    request.state.identity = identity
    return identity


def require_role(allowed: Iterable[Role | str]) -> Callable[..., Identity]:
    """Build a dependency that admits only identities whose role is in allowed.

    Use as a FastAPI dependency:
        @router.get("/admin-only")
        def route(identity: Identity = Depends(require_role([Role.admin]))): ...
    """
    allowed_roles = frozenset(Role(r) for r in allowed)

    def dependency(identity: Identity = Depends(authenticate)) -> Identity:
        if not role_allowed(identity.role, allowed_roles):
            raise AccessDeniedError(f"Roles required: {', '.join(sorted(r.value for r in allowed_roles))}")
        return identity

    return dependency


def require_ownership_or_role(
    allowed: Iterable[Role | str] = (Role.admin,),
    param: str = "id",
) -> Callable[..., Identity]:
    """Build a dependency that admits allowed roles, or the owner of the path resource.

    The owner is the caller whose account id or profile id equals the value of
    the path parameter named `param`.
    """
    allowed_roles = frozenset(Role(r) for r in allowed)

    def dependency(request: Request, identity: Identity = Depends(authenticate)) -> Identity:
        if role_allowed(identity.role, allowed_roles):
            return identity
        resource_id = request.path_params.get(param)
        if resource_id is not None and resource_id in (identity.id, identity.profile_id):
            return identity
        raise AccessDeniedError("You are not the owner of the resource nor do you have the necessary role")

    return dependency


require_admin = require_role([Role.admin])
