"""
api/routes/v1/accounts.py -- Account administration endpoints that touch session state.

Routes:
  GET   /api/v1/accounts                              -- list accounts (admin)
  GET   /api/v1/accounts/{account_id}                 -- one account (owner or admin)
  PATCH /api/v1/accounts/{account_id}/role            -- change role (admin)
  PATCH /api/v1/accounts/{account_id}/status          -- activate/deactivate (admin)
  POST  /api/v1/accounts/{account_id}/reset-password  -- set a new password (admin)
  POST  /api/v1/accounts/{account_id}/force-logout    -- revoke refresh token (admin)

{account_id} may be either the account id or the linked profile id. The
ownership gate accepts both. When the value names the caller, the caller's
own account is returned; otherwise (admin path) the account id is tried
first, then the profile id.

Guards:
  - An admin cannot deactivate their own account.
  - The last active admin can be neither demoted nor deactivated.
  - Deactivation clears the refresh pair; existing access tokens stop working
    on their next validation because the live account is re-checked.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import AccountResponse, ResetPasswordRequest, RoleUpdate, StatusUpdate
from auth.dependencies import require_admin, require_ownership_or_role
from auth.models import Account, Identity, Role
from auth.session import SessionService
from auth.store import AccountStore
from core.errors import NotFoundError, ValidationError

# Auth policy:
# - GET   /api/v1/accounts:                          requires admin (require_admin)
# - GET   /api/v1/accounts/{account_id}:             requires owner or admin (require_ownership_or_role)
# - PATCH /api/v1/accounts/{account_id}/role:        requires admin
# - PATCH /api/v1/accounts/{account_id}/status:      requires admin
# - POST  /api/v1/accounts/{account_id}/reset-password: requires admin
# - POST  /api/v1/accounts/{account_id}/force-logout:   requires admin
router = APIRouter()

_owner_or_admin = require_ownership_or_role([Role.admin], param="account_id")


def _resolve(store: AccountStore, account_id: str) -> Account:
    account = store.get_by_id(account_id) or store.get_by_profile_id(account_id)
    if account is None:
        raise NotFoundError("Account", account_id)
    return account


@router.get("/accounts", response_model=list[AccountResponse])
def list_accounts(request: Request, identity: Identity = Depends(require_admin)) -> list[AccountResponse]:
    """List all accounts. Admin only."""
    store: AccountStore = request.app.state.account_store
    return [AccountResponse.from_account(a) for a in store.list_accounts()]


@router.get("/accounts/{account_id}", response_model=AccountResponse)
def get_account(request: Request, account_id: str, identity: Identity = Depends(_owner_or_admin)) -> AccountResponse:
    """Return one account to its owner or to an admin."""
    store: AccountStore = request.app.state.account_store
    # Owners resolve through their own identity, not the column the path value matched.
    if account_id in (identity.id, identity.profile_id):
        return AccountResponse.from_account(_resolve(store, identity.id))
    return AccountResponse.from_account(_resolve(store, account_id))


@router.patch("/accounts/{account_id}/role", response_model=AccountResponse)
def update_role(
    request: Request,
    account_id: str,
    body: RoleUpdate,
    identity: Identity = Depends(require_admin),
) -> AccountResponse:
    """Change an account's role. Takes effect on the holder's next request."""
    store: AccountStore = request.app.state.account_store
    target = _resolve(store, account_id)

    if target.role == Role.admin and body.role != Role.admin and target.is_active:
        if store.count_active_admins() <= 1:
            raise ValidationError("Cannot remove the last admin.", field="role", reason="last_admin")

    store.update_role(target.id, body.role)
    return AccountResponse.from_account(store.get_by_id(target.id))


@router.patch("/accounts/{account_id}/status", response_model=AccountResponse)
def update_status(
    request: Request,
    account_id: str,
    body: StatusUpdate,
    identity: Identity = Depends(require_admin),
) -> AccountResponse:
    """Activate or deactivate an account. Deactivation ends its session."""
    store: AccountStore = request.app.state.account_store
    target = _resolve(store, account_id)

    if not body.is_active:
        if target.id == identity.id:
            raise ValidationError(
                "You cannot deactivate your own account.", field="isActive", reason="self_deactivation"
            )
        if target.role == Role.admin and target.is_active and store.count_active_admins() <= 1:
            raise ValidationError(
                "Cannot deactivate the last active admin account.", field="isActive", reason="last_admin"
            )

    store.set_active(target.id, body.is_active)
    return AccountResponse.from_account(store.get_by_id(target.id))


@router.post("/accounts/{account_id}/reset-password", response_model=AccountResponse)
def reset_password(
    request: Request,
    account_id: str,
    body: ResetPasswordRequest,
    identity: Identity = Depends(require_admin),
) -> AccountResponse:
    """Set a new password without the current one. Ends the account's session."""
    store: AccountStore = request.app.state.account_store
    sessions: SessionService = request.app.state.sessions
    target = _resolve(store, account_id)
    return AccountResponse.from_account(sessions.reset_password(target.id, body.new_password))


@router.post("/accounts/{account_id}/force-logout", response_model=AccountResponse)
def force_logout(request: Request, account_id: str, identity: Identity = Depends(require_admin)) -> AccountResponse:
    """Revoke another account's refresh token."""
    store: AccountStore = request.app.state.account_store
    sessions: SessionService = request.app.state.sessions
    target = _resolve(store, account_id)
    return AccountResponse.from_account(sessions.force_logout(target.id))
