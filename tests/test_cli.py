"""
tests/test_cli.py -- Tests for the account provisioning CLI in main.py.

Each test points the CLI at a throwaway SQLite file through a patched
get_settings(), answers the password prompts by patching getpass, and then
inspects the database with its own AccountStore.
"""

from __future__ import annotations

import getpass
import logging
from datetime import datetime, timedelta, timezone

import pytest

import main as cli
from auth.models import Role
from auth.store import AccountStore
from core.config import Settings


@pytest.fixture
def settings(tmp_path, monkeypatch) -> Settings:
    s = Settings(_env_file=None, debug=True, database_url=f"sqlite:///{tmp_path / 'cli.db'}", bcrypt_rounds=4)
    monkeypatch.setattr(cli, "get_settings", lambda: s)
    return s


@pytest.fixture
def answer(monkeypatch):
    """Queue the replies the password prompts will receive, in order."""

    def queue(*replies: str) -> None:
        pending = iter(replies)
        monkeypatch.setattr(getpass, "getpass", lambda prompt="": next(pending))

    return queue


def _open(settings: Settings) -> AccountStore:
    return AccountStore(settings.database_url)


class TestCreateAccount:
    def test_creates_client_account(self, settings: Settings, answer, capsys) -> None:
        answer("s3cret-pw", "s3cret-pw")
        assert cli.main(["create-account", "  Alice ", "--profile-id", "cust-1001"]) == 0
        assert "Created account 'alice'" in capsys.readouterr().out

        store = _open(settings)
        try:
            account = store.get_by_username("alice")
            assert account is not None
            assert account.role is Role.client
            assert account.profile_id == "cust-1001"
            assert account.hashed_password != "s3cret-pw"
        finally:
            store.close()

    def test_creates_admin_account(self, settings: Settings, answer) -> None:
        answer("rootpass", "rootpass")
        assert cli.main(["create-account", "root", "--profile-id", "staff-1", "--role", "admin"]) == 0

        store = _open(settings)
        try:
            assert store.get_by_username("root").role is Role.admin
        finally:
            store.close()

    def test_mismatched_confirmation(self, settings: Settings, answer, capsys) -> None:
        answer("s3cret-pw", "something-else")
        assert cli.main(["create-account", "alice", "--profile-id", "cust-1001"]) == 1
        assert "do not match" in capsys.readouterr().err

        store = _open(settings)
        try:
            assert store.get_by_username("alice") is None
        finally:
            store.close()

    def test_short_password_rejected(self, settings: Settings, answer, capsys) -> None:
        answer("abc")
        assert cli.main(["create-account", "alice", "--profile-id", "cust-1001"]) == 1
        assert "characters" in capsys.readouterr().err

    def test_duplicate_username(self, settings: Settings, answer, capsys) -> None:
        answer("s3cret-pw", "s3cret-pw", "other-pw", "other-pw")
        assert cli.main(["create-account", "alice", "--profile-id", "cust-1001"]) == 0
        assert cli.main(["create-account", "ALICE", "--profile-id", "cust-2002"]) == 1
        assert "already taken" in capsys.readouterr().err


class TestListAccounts:
    def test_empty_store(self, settings: Settings, capsys) -> None:
        assert cli.main(["list-accounts"]) == 0
        assert "No accounts." in capsys.readouterr().out

    def test_lists_created_accounts(self, settings: Settings, answer, capsys) -> None:
        answer("s3cret-pw", "s3cret-pw")
        cli.main(["create-account", "alice", "--profile-id", "cust-1001"])
        capsys.readouterr()

        assert cli.main(["list-accounts"]) == 0
        out = capsys.readouterr().out
        assert "alice" in out
        assert "client" in out
        assert "active" in out


class TestForceLogout:
    def test_clears_session_through_session_service(self, settings: Settings, answer, caplog, capsys) -> None:
        caplog.set_level(logging.INFO, logger="storefront.auth.session")
        answer("s3cret-pw", "s3cret-pw")
        cli.main(["create-account", "alice", "--profile-id", "cust-1001"])

        store = _open(settings)
        try:
            account = store.get_by_username("alice")
            store.start_session(account.id, "refresh-value", datetime.now(timezone.utc) + timedelta(days=1))
            assert store.get_by_id(account.id).has_session
        finally:
            store.close()

        assert cli.main(["force-logout", "Alice"]) == 0
        assert "Cleared session for 'alice'" in capsys.readouterr().out
        assert any("Forced logout" in record.getMessage() for record in caplog.records)

        store = _open(settings)
        try:
            cleared = store.get_by_id(account.id)
            assert cleared.refresh_token is None
            assert cleared.refresh_token_expires_at is None
        finally:
            store.close()

    def test_unknown_username(self, settings: Settings, capsys) -> None:
        assert cli.main(["force-logout", "nobody"]) == 1
        assert "No account named 'nobody'" in capsys.readouterr().err


def test_no_command_prints_help(settings: Settings, capsys) -> None:
    assert cli.main([]) == 1
    assert "create-account" in capsys.readouterr().out
