"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper. AccountStore is the repository;
_row_to_account is the mapper. Services and routes never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Usernames are normalized (trimmed, lowercased) on every write AND every
  lookup, so "  Alice " and "alice" always address the same record.

Atomicity:
  Every mutation is a single UPDATE statement. The refresh pair
  (refresh_token, refresh_token_expires_at) is always written or cleared
  together in that one statement, so the "both null or both set" invariant
  holds even under concurrent requests. Two concurrent logins for the same
  account resolve last-write-wins: only the later refresh token survives.

DB path: storefront_auth.db at the project root unless DATABASE_URL is set.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from auth.models import Account, Role

logger = logging.getLogger("storefront.auth.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(30), nullable=False, server_default=Role.client.value),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("profile_id", String(64), nullable=False, unique=True),
    Column("refresh_token", Text),
    Column("refresh_token_expires_at", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("last_login", String(32)),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block behind the refresh-pair writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_username(username: str) -> str:
    return username.strip().lower()


_CLEARED_SESSION = {"refresh_token": None, "refresh_token_expires_at": None}


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account records.

    Usage:
        store = AccountStore("sqlite:///:memory:")
        account_id = store.create_account(Account(username="alice", profile_id="p-1",
                                                  hashed_password=hasher.hash("secret")))
        account = store.get_by_username("Alice")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def create_account(self, account: Account) -> str:
        """Insert a new account and return its generated id.

        Raises sqlalchemy.exc.IntegrityError if the username or profile_id is
        already taken. Any refresh pair on the passed object is ignored: new
        accounts always start without a session.
        """
        if not account.hashed_password:
            raise ValueError("hashed_password is required to create an account")
        account_id = uuid.uuid4().hex
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _accounts.insert().values(
                    id=account_id,
                    username=normalize_username(account.username),
                    hashed_password=account.hashed_password,
                    role=Role(account.role).value,
                    is_active=1 if account.is_active else 0,
                    profile_id=account.profile_id,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        logger.info("Account created id=%s role=%s", account_id, Role(account.role).value)
        return account_id

    def get_by_id(self, account_id: str) -> Account | None:
        """Look up an account by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_username(self, username: str, *, active_only: bool = False) -> Account | None:
        """Look up an account by normalized username. Returns None if not found."""
        stmt = _accounts.select().where(_accounts.c.username == normalize_username(username))
        if active_only:
            stmt = stmt.where(_accounts.c.is_active == 1)
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_profile_id(self, profile_id: str) -> Account | None:
        """Look up the account linked to a profile (one-to-one). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.profile_id == profile_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def list_accounts(self, *, active_only: bool = False) -> list[Account]:
        """Return accounts ordered by username."""
        stmt = _accounts.select().order_by(_accounts.c.username)
        if active_only:
            stmt = stmt.where(_accounts.c.is_active == 1)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_account(r) for r in rows]

    def count_active_admins(self) -> int:
        """Return the number of active admin accounts (last-admin guard)."""
        stmt = (
            select(func.count())
            .select_from(_accounts)
            .where((_accounts.c.role == Role.admin.value) & (_accounts.c.is_active == 1))
        )
        with self.engine.connect() as conn:
            result = conn.execute(stmt).scalar()
        return result or 0

    # ------------------------------------------------------------------
    # Session (refresh pair) mutations
    # ------------------------------------------------------------------

    def start_session(self, account_id: str, refresh_token: str, expires_at: datetime) -> bool:
        """Persist the refresh pair and stamp last_login, overwriting any prior session.

        Returns True if a row was updated, False if account_id was not found.
        """
        now = _now_iso()
        return self._update(
            account_id,
            refresh_token=refresh_token,
            refresh_token_expires_at=expires_at.astimezone(timezone.utc).isoformat(),
            last_login=now,
        )

    def clear_session(self, account_id: str) -> bool:
        """Clear the refresh pair. Idempotent: clearing an empty session still returns True."""
        return self._update(account_id, **_CLEARED_SESSION)

    # ------------------------------------------------------------------
    # Account mutations
    # ------------------------------------------------------------------

    def update_password(self, account_id: str, hashed_password: str) -> bool:
        """Replace the password hash and clear the refresh pair in one write."""
        return self._update(account_id, hashed_password=hashed_password, **_CLEARED_SESSION)

    def set_active(self, account_id: str, is_active: bool) -> bool:
        """Activate or deactivate. Deactivation also clears the refresh pair."""
        fields: dict = {"is_active": 1 if is_active else 0}
        if not is_active:
            fields.update(_CLEARED_SESSION)
        return self._update(account_id, **fields)

    def update_role(self, account_id: str, role: Role) -> bool:
        """Change the role. Existing access tokens pick it up on their next validation."""
        return self._update(account_id, role=Role(role).value)

    def _update(self, account_id: str, **fields) -> bool:
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query (health check)."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.exception("Account store health check failed")
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    expires_at = datetime.fromisoformat(row.refresh_token_expires_at) if row.refresh_token_expires_at else None
    return Account(
        id=row.id,
        username=row.username,
        hashed_password=row.hashed_password,
        role=Role(row.role),
        is_active=bool(row.is_active),
        profile_id=row.profile_id,
        refresh_token=row.refresh_token,
        refresh_token_expires_at=expires_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
        last_login=row.last_login,
    )
