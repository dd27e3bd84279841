"""
accounts/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper. AccountStoreAdapter is the interface the
account service depends on; AccountStore is the SQLAlchemy implementation and
_row_to_account is the mapper. Service and route code never touches SQL.

Uniqueness of username and email is enforced by UNIQUE constraints. An
IntegrityError from either insert or update is surfaced as ConflictError, so
a rejected write never leaves a partial record behind.

Ordering: every listing orders by ascending id. Offset pagination is stable
across pages as long as no rows are inserted between requests; an insert
between two page requests shifts the page boundary by one row.

Security:
  All queries use bound parameters. The username filter escapes LIKE
  wildcards (% and _) so a search string is matched literally.

Usage:
    store = AccountStore()                                # SQLite default
    store = AccountStore("postgresql://user:pw@host/db")  # PostgreSQL
    account_id = store.insert(account)
    items, total = store.find_page(offset=0, limit=10)
    store.close()
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from accounts.models import Account
from auth.models import Role
from core.errors import ConflictError

logger = logging.getLogger("accountsvc.accounts")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'accounts.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_accounts = Table(
    "accounts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("username", String(255), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("role", String(30), nullable=False, server_default=Role.USER.value),
    Column("profile_image", String(255)),
    Column("created_at", String(32), nullable=False),
)

# Columns update() may write. Anything else is a programming error.
_UPDATABLE_FIELDS = frozenset({"name", "username", "email", "password_hash", "role", "profile_image"})


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------


class AccountStoreAdapter(Protocol):
    """Operations the account service consumes from storage."""

    def insert(self, account: Account) -> int: ...

    def find_by_id(self, account_id: int) -> Account | None: ...

    def find_by_email(self, email: str) -> Account | None: ...

    def find_all(self) -> list[Account]: ...

    def find_page(self, offset: int, limit: int) -> tuple[list[Account], int]: ...

    def find_page_by_username_substring(
        self, offset: int, limit: int, substring: str
    ) -> tuple[list[Account], int]: ...

    def update(self, account_id: int, **fields) -> bool: ...

    def delete(self, account_id: int) -> bool: ...


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """SQLAlchemy-backed AccountStoreAdapter."""

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, account: Account) -> int:
        """Insert a new account and return its assigned id.

        Raises ConflictError if the username or email is already taken.
        """
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _accounts.insert().values(
                        name=account.name,
                        username=account.username,
                        email=account.email,
                        password_hash=account.password_hash,
                        role=Role(account.role).value,
                        profile_image=account.profile_image,
                        created_at=_now_iso(),
                    )
                )
                conn.commit()
                return result.inserted_primary_key[0]
        except IntegrityError as exc:
            raise ConflictError() from exc

    def update(self, account_id: int, **fields) -> bool:
        """Update the given columns on one account.

        Returns True if a row was updated, False if account_id was not found.
        Raises ConflictError if a new username or email is already taken.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown account fields: {sorted(unknown)!r}")
        if not fields:
            return self.find_by_id(account_id) is not None
        if "role" in fields:
            fields["role"] = Role(fields["role"]).value
        try:
            with self.engine.connect() as conn:
                result = conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(**fields))
                conn.commit()
        except IntegrityError as exc:
            raise ConflictError() from exc
        return result.rowcount > 0

    def delete(self, account_id: int) -> bool:
        """Permanently delete an account. Returns True if deleted, False if not found."""
        with self.engine.connect() as conn:
            result = conn.execute(_accounts.delete().where(_accounts.c.id == account_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_id(self, account_id: int) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_by_email(self, email: str) -> Account | None:
        """Look up an account by exact email (case-sensitive)."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == email)).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_all(self) -> list[Account]:
        with self.engine.connect() as conn:
            rows = conn.execute(_accounts.select().order_by(_accounts.c.id)).fetchall()
        return [_row_to_account(r) for r in rows]

    def find_page(self, offset: int, limit: int) -> tuple[list[Account], int]:
        """Return (accounts[offset:offset+limit] by ascending id, total account count)."""
        return self._page(offset, limit)

    def find_page_by_username_substring(self, offset: int, limit: int, substring: str) -> tuple[list[Account], int]:
        """Like find_page, restricted to usernames containing `substring` literally."""
        return self._page(offset, limit, _accounts.c.username.contains(substring, autoescape=True))

    def _page(self, offset: int, limit: int, where=None) -> tuple[list[Account], int]:
        items_q = select(_accounts).order_by(_accounts.c.id).offset(offset).limit(limit)
        count_q = select(func.count()).select_from(_accounts)
        if where is not None:
            items_q = items_q.where(where)
            count_q = count_q.where(where)
        with self.engine.connect() as conn:
            rows = conn.execute(items_q).fetchall()
            total = conn.execute(count_q).scalar() or 0
        return [_row_to_account(r) for r in rows], total

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.exception("Database ping failed")
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        name=row.name,
        username=row.username,
        email=row.email,
        password_hash=row.password_hash,
        role=Role(row.role),
        profile_image=row.profile_image,
        created_at=row.created_at,
    )
