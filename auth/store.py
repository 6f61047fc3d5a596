"""
auth/store.py -- SQLAlchemy Core persistence layer for users.

Pattern: Repository + Data Mapper (same as catalog/store.py).
UserStore is the repository; _row_to_user is the mapper.
Route and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  UNIQUE(auth_provider, auth_id) is enforced in SQL: every user row has both
  values set (OAuth users from the provider, the actuator user from "local").

Roles are stored as a JSON array of role values in a TEXT column. The set is
small and always read whole, so a join table buys nothing.

DB path: auth/bookshelf_users.db

Layer rule: no imports from api/ or catalog/.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Column, MetaData, String, Table, Text, UniqueConstraint, create_engine, event, text
from sqlalchemy.engine import Engine

from auth.models import Role, User

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'bookshelf_users.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("auth_provider", String(30), nullable=False),
    Column("auth_id", String(255), nullable=False),
    Column("full_name", String(255), nullable=False, server_default=""),
    Column("email", String(255), nullable=False, server_default=""),
    Column("picture", Text),
    Column("roles", Text, nullable=False),  # JSON array of Role values
    Column("first_logon", String(32), nullable=False),
    Column("last_logon", String(32)),
    UniqueConstraint("auth_provider", "auth_id", name="uq_user_auth"),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _dump_roles(roles) -> str:
    return json.dumps(sorted(Role(r).value for r in roles))


def _load_roles(raw: str | None) -> set[Role]:
    if not raw:
        return set()
    return {Role(value) for value in json.loads(raw)}


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore()
        user_id = store.create_user(User(full_name="Ada", auth_provider="google", auth_id="123"))
        user = store.get_by_id(user_id)
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(text("SELECT COUNT(*) FROM users")).scalar()
        return result or 0

    def create_user(self, user: User) -> str:
        """Insert a new user and return its generated id.

        Raises sqlalchemy.exc.IntegrityError if (auth_provider, auth_id) is
        already taken. Callers provisioning from a login should look the user
        up first with get_by_auth().
        """
        user_id = uuid.uuid4().hex
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    auth_provider=user.auth_provider,
                    auth_id=user.auth_id,
                    full_name=user.full_name,
                    email=user.email,
                    picture=user.picture,
                    roles=_dump_roles(user.roles),
                    first_logon=now,
                    last_logon=user.last_logon or now,
                )
            )
            conn.commit()
        return user_id

    def get_by_id(self, user_id: str) -> User | None:
        """Look up a user by id. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_auth(self, provider: str, auth_id: str) -> User | None:
        """Look up a user by (auth_provider, auth_id). Returns None if not linked yet."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where((_users.c.auth_provider == provider) & (_users.c.auth_id == auth_id))
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by full name. Admin-only operation."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.full_name, _users.c.id)).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_profile(self, user_id: str, full_name: str, email: str, picture: str = "") -> bool:
        """Refresh provider-sourced profile fields and stamp last_logon.

        Called on every login of an existing user so name and email changes
        at the provider show up here.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(full_name=full_name, email=email, picture=picture, last_logon=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def update_roles(self, user_id: str, roles) -> bool:
        """Replace the role set of a user.

        Returns True if a row was updated, False if user_id was not found.
        Self-modification checks are the caller's responsibility (the route
        runs AuthorizationGuard.ensure_not_self first).
        """
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(roles=_dump_roles(roles)))
            conn.commit()
        return result.rowcount > 0

    def delete_user(self, user_id: str) -> bool:
        """Permanently delete a user record. Returns True if deleted, False if not found.

        Outstanding session tokens for the user stay cryptographically valid
        until they expire; the principal resolver reports them as stale.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        auth_provider=row.auth_provider,
        auth_id=row.auth_id,
        full_name=row.full_name or "",
        email=row.email or "",
        picture=row.picture or "",
        roles=_load_roles(row.roles),
        first_logon=row.first_logon,
        last_logon=row.last_logon or "",
    )
