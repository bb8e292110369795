"""
tests/test_account_store.py -- Unit tests for AccountStore.

Covers:
  - username normalization on write and lookup
  - uniqueness of username and profile id
  - the refresh pair: written together, cleared together, never half-set
  - password updates and deactivation clear the refresh pair
  - admin counting for the last-admin guard
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import Account, Role
from auth.passwords import PasswordHasher
from auth.store import AccountStore, normalize_username

from .conftest import make_account

_EXPIRES = datetime(2024, 1, 22, 12, 0, 0, tzinfo=timezone.utc)


class TestCreateAndLookup:
    def test_username_is_normalized_on_create(self, store: AccountStore, hasher: PasswordHasher) -> None:
        account = make_account(store, hasher, "  Alice ", "wonderland")
        assert account.username == "alice"

    def test_lookup_ignores_case_and_whitespace(self, store: AccountStore, alice: Account) -> None:
        found = store.get_by_username("  ALICE\t")
        assert found is not None
        assert found.id == alice.id

    def test_normalize_username(self) -> None:
        assert normalize_username("  MiXeD ") == "mixed"

    def test_duplicate_username_rejected(self, store: AccountStore, hasher: PasswordHasher, alice: Account) -> None:
        with pytest.raises(IntegrityError):
            make_account(store, hasher, "ALICE", "other-pass", profile_id="cust-2")

    def test_duplicate_profile_rejected(self, store: AccountStore, hasher: PasswordHasher, alice: Account) -> None:
        with pytest.raises(IntegrityError):
            make_account(store, hasher, "bob", "bob-pass", profile_id=alice.profile_id)

    def test_hash_required(self, store: AccountStore) -> None:
        with pytest.raises(ValueError):
            store.create_account(Account(username="nohash", profile_id="p-9"))

    def test_new_account_defaults(self, alice: Account) -> None:
        assert alice.id and len(alice.id) == 32
        assert alice.role is Role.client
        assert alice.is_active is True
        assert alice.has_session is False
        assert alice.refresh_token_expires_at is None
        assert alice.created_at
        assert alice.last_login is None

    def test_get_by_profile_id(self, store: AccountStore, alice: Account) -> None:
        assert store.get_by_profile_id("cust-1001").id == alice.id
        assert store.get_by_profile_id("nope") is None

    def test_unknown_id_returns_none(self, store: AccountStore) -> None:
        assert store.get_by_id("0" * 32) is None

    def test_list_accounts_sorted_and_filtered(
        self, store: AccountStore, hasher: PasswordHasher, alice: Account, admin: Account
    ) -> None:
        zed = make_account(store, hasher, "zed", "zed-pass")
        assert [a.username for a in store.list_accounts()] == ["admin", "alice", "zed"]
        store.set_active(zed.id, False)
        assert [a.username for a in store.list_accounts(active_only=True)] == ["admin", "alice"]


class TestRefreshPair:
    def test_start_session_sets_both_fields(self, store: AccountStore, alice: Account) -> None:
        assert store.start_session(alice.id, "rt-1", _EXPIRES) is True
        reloaded = store.get_by_id(alice.id)
        assert reloaded.refresh_token == "rt-1"
        assert reloaded.refresh_token_expires_at == _EXPIRES
        assert reloaded.refresh_token_expires_at.tzinfo is not None
        assert reloaded.last_login is not None

    def test_start_session_overwrites_previous(self, store: AccountStore, alice: Account) -> None:
        store.start_session(alice.id, "rt-1", _EXPIRES)
        store.start_session(alice.id, "rt-2", _EXPIRES + timedelta(hours=1))
        reloaded = store.get_by_id(alice.id)
        assert reloaded.refresh_token == "rt-2"
        assert reloaded.refresh_token_expires_at == _EXPIRES + timedelta(hours=1)

    def test_clear_session_clears_both_fields(self, store: AccountStore, alice: Account) -> None:
        store.start_session(alice.id, "rt-1", _EXPIRES)
        assert store.clear_session(alice.id) is True
        reloaded = store.get_by_id(alice.id)
        assert reloaded.refresh_token is None
        assert reloaded.refresh_token_expires_at is None

    def test_clear_session_is_idempotent(self, store: AccountStore, alice: Account) -> None:
        assert store.clear_session(alice.id) is True
        assert store.clear_session(alice.id) is True

    def test_clear_session_unknown_account(self, store: AccountStore) -> None:
        assert store.clear_session("0" * 32) is False

    def test_update_password_clears_session(self, store: AccountStore, hasher: PasswordHasher, alice: Account) -> None:
        store.start_session(alice.id, "rt-1", _EXPIRES)
        new_hash = hasher.hash("new-password")
        assert store.update_password(alice.id, new_hash) is True
        reloaded = store.get_by_id(alice.id)
        assert reloaded.hashed_password == new_hash
        assert reloaded.has_session is False
        assert reloaded.refresh_token_expires_at is None


class TestAccountState:
    def test_deactivation_clears_session(self, store: AccountStore, alice: Account) -> None:
        store.start_session(alice.id, "rt-1", _EXPIRES)
        store.set_active(alice.id, False)
        reloaded = store.get_by_id(alice.id)
        assert reloaded.is_active is False
        assert reloaded.refresh_token is None
        assert reloaded.refresh_token_expires_at is None

    def test_inactive_hidden_from_active_only_lookup(self, store: AccountStore, alice: Account) -> None:
        store.set_active(alice.id, False)
        assert store.get_by_username("alice", active_only=True) is None
        assert store.get_by_username("alice") is not None

    def test_reactivation_keeps_session_empty(self, store: AccountStore, alice: Account) -> None:
        store.set_active(alice.id, False)
        store.set_active(alice.id, True)
        reloaded = store.get_by_id(alice.id)
        assert reloaded.is_active is True
        assert reloaded.has_session is False

    def test_update_role(self, store: AccountStore, alice: Account) -> None:
        assert store.update_role(alice.id, Role.admin) is True
        assert store.get_by_id(alice.id).role is Role.admin

    def test_count_active_admins(self, store: AccountStore, hasher: PasswordHasher, admin: Account) -> None:
        assert store.count_active_admins() == 1
        second = make_account(store, hasher, "root", "rootpass", role=Role.admin)
        assert store.count_active_admins() == 2
        store.set_active(second.id, False)
        assert store.count_active_admins() == 1

    def test_ping(self, store: AccountStore) -> None:
        assert store.ping() is True
