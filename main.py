#!/usr/bin/env python3
"""
Storefront auth -- account provisioning CLI.

There is no self-registration endpoint. Accounts (including the first admin)
are created from the command line against the configured DATABASE_URL.

Usage:
  python main.py create-account alice --profile-id cust-1001
  python main.py create-account root --profile-id staff-1 --role admin
  python main.py list-accounts
  python main.py force-logout alice

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the account store (default: storefront_auth.db)
  SECRET_KEY    Required unless DEBUG=true (settings are validated as a whole)
"""

import argparse
import getpass
import logging
import sys

from sqlalchemy.exc import IntegrityError

from auth.models import Account, Role
from auth.passwords import PasswordHasher
from auth.session import MAX_PASSWORD_LENGTH, SessionService
from auth.store import AccountStore, normalize_username
from core.config import get_settings


def _read_password(min_length: int) -> str | None:
    """Prompt twice for a password without echoing it. Returns None on mismatch."""
    password = getpass.getpass("Password: ")
    if len(password) < min_length or len(password) > MAX_PASSWORD_LENGTH:
        print(f"  [!] Password must be {min_length}-{MAX_PASSWORD_LENGTH} characters.", file=sys.stderr)
        return None
    if getpass.getpass("Confirm password: ") != password:
        print("  [!] Passwords do not match.", file=sys.stderr)
        return None
    return password


def _create_account(store: AccountStore, args: argparse.Namespace) -> int:
    settings = get_settings()
    username = normalize_username(args.username)
    if not username or len(username) > 255:
        print("  [!] Invalid username length.", file=sys.stderr)
        return 1

    password = _read_password(settings.min_password_length)
    if password is None:
        return 1

    hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
    account = Account(
        username=username,
        profile_id=args.profile_id,
        role=Role(args.role),
        hashed_password=hasher.hash(password),
    )
    try:
        account_id = store.create_account(account)
    except IntegrityError:
        print(f"  [!] Username '{username}' or profile '{args.profile_id}' is already taken.", file=sys.stderr)
        return 1
    print(f"  Created account '{username}' (id={account_id}, role={args.role}).")
    return 0


def _list_accounts(store: AccountStore, args: argparse.Namespace) -> int:
    accounts = store.list_accounts(active_only=args.active)
    if not accounts:
        print("  No accounts.")
        return 0
    for account in accounts:
        status = "active" if account.is_active else "inactive"
        session = "session" if account.has_session else "-"
        print(f"  {account.id}  {account.username:<24} {account.role.value:<7} {status:<9} {session}")
    return 0


def _force_logout(store: AccountStore, args: argparse.Namespace) -> int:
    account = store.get_by_username(args.username)
    if account is None:
        print(f"  [!] No account named '{normalize_username(args.username)}'.", file=sys.stderr)
        return 1
    SessionService.from_settings(get_settings(), store).force_logout(account.id)
    print(f"  Cleared session for '{account.username}'.")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="storefront-auth",
        description="Provision and inspect storefront accounts.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-account alice --profile-id cust-1001
  python main.py create-account root --profile-id staff-1 --role admin
  python main.py list-accounts --active
  python main.py force-logout alice
        """,
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")

    create = commands.add_parser("create-account", help="Create an account (prompts for the password)")
    create.add_argument("username", help="Login name; stored trimmed and lowercased")
    create.add_argument("--profile-id", required=True, help="Id of the linked customer or staff profile")
    create.add_argument("--role", choices=[r.value for r in Role], default=Role.client.value)
    create.set_defaults(handler=_create_account)

    listing = commands.add_parser("list-accounts", help="List accounts")
    listing.add_argument("--active", action="store_true", help="Only show active accounts")
    listing.set_defaults(handler=_list_accounts)

    logout = commands.add_parser("force-logout", help="Revoke an account's refresh token")
    logout.add_argument("username")
    logout.set_defaults(handler=_force_logout)

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 1

    logging.basicConfig(level=logging.INFO, format="  %(levelname)s %(name)s %(message)s")

    store = AccountStore(get_settings().database_url)
    try:
        return args.handler(store, args)
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
