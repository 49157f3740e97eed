"""
auth/store.py -- The user database boundary and its SQLAlchemy Core implementation.

Credential persistence belongs to the embedding application. Auth talks to it
only through the UserDatabase protocol below; any object with these two
methods works (an ORM repository, a dict in a test, a remote service client).

UserStore is the implementation the demo API and the tests use.
Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Route and service code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Concurrency:
  create_user_if_not_exists() relies on the UNIQUE(username) constraint, not
  on a read-then-write check. Two concurrent registrations for the same name
  both attempt the INSERT; the loser gets IntegrityError and resolves to the
  winner's id, which Auth.register() turns into UsernameTaken.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import StoreError
from auth.models import User

logger = logging.getLogger("gatekey.store")


@runtime_checkable
class UserDatabase(Protocol):
    """What Auth needs from the embedding application's credential store."""

    def create_user_if_not_exists(self, user_id: str, username: str, hashed_password: str) -> str:
        """Create the user and return user_id.

        If a user with the given username already exists, return the id of
        that user instead and leave the stored record untouched.
        """
        ...

    def get_by_username(self, username: str) -> User | None:
        """Return the stored user, or None if no such username exists."""
        ...


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),  # UUID4 string
    Column("username", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),  # bcrypt, salt embedded
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block behind writers.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """SQLAlchemy-backed UserDatabase.

    Usage:
        store = UserStore("sqlite:///users.db")
        user_id = store.create_user_if_not_exists(str(uuid4()), "sam", hash_password("secret"))
        user = store.get_by_username("sam")
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

    def create_user_if_not_exists(self, user_id: str, username: str, hashed_password: str) -> str:
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _users.insert().values(
                        id=user_id,
                        username=username,
                        hashed_password=hashed_password,
                        created_at=_now_iso(),
                    )
                )
                conn.commit()
            return user_id
        except IntegrityError:
            existing = self.get_by_username(username)
            if existing is None:
                # IntegrityError from something other than the username constraint.
                raise StoreError("Could not create user.") from None
            return existing.id
        except SQLAlchemyError as exc:
            logger.error("User insert failed: %s", exc)
            raise StoreError() from exc

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        try:
            with self.engine.connect() as conn:
                row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        except SQLAlchemyError as exc:
            logger.error("User lookup failed: %s", exc)
            raise StoreError() from exc
        return _row_to_user(row) if row is not None else None

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by GET /health."""
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


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        hashed_password=row.hashed_password,
        created_at=row.created_at,
    )
