"""
auth/store.py -- SQLAlchemy Core persistence layer for the user directory.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper. Route and resolver
code never touches SQL directly.

UserStore satisfies the auth.models.UserDirectory protocol used by the Google
sign-in resolver:
  admin_registration_open() -- True only while the users table is empty.
  find_one_by_email()       -- exact match on the unique email column.
  update()                  -- writes fields, returns the refreshed User.
  create()                  -- inserts, returns the stored User.

Security:
  All queries use bound parameters. No f-strings in SQL.

  email is UNIQUE at the SQL level. Two concurrent first sign-ins for the same
  address both pass the "no user yet" check; the second INSERT raises
  IntegrityError, which the resolver reports as an error outcome.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, create_engine, event, func, select
from sqlalchemy.engine import Engine

from auth.models import User

_DEFAULT_DB_URL = "sqlite:///signon.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(320), nullable=False, unique=True),
    Column("role", String(30), nullable=False, server_default="editor"),
    Column("disabled", Integer, nullable=False, server_default="0"),
    Column("signup_at", String(32)),  # NULL until first Google sign-in
    Column("created_at", String(32), nullable=False),
)

# Columns update() may write. Anything else is a programming error.
_UPDATABLE = {"role", "disabled", "signup_at"}


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


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore()
        user = store.create(User(email="ada@example.com", role="editor"))
        store.update(user.id, disabled=True)
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

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        """Return True if at least one user record exists."""
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return (result or 0) > 0

    def admin_registration_open(self) -> bool:
        """Return True while the directory is empty.

        The first person to sign in is granted the admin role; once any user
        exists, new accounts need an allow-listed domain and become editors.
        """
        return not self.has_users()

    def find_one_by_email(self, email: str) -> User | None:
        """Look up a user by exact email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by email. Admin-only operation."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.email)).fetchall()
        return [_row_to_user(r) for r in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, user: User) -> User:
        """Insert a new user and return the stored record.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=user.email,
                    role=user.role,
                    disabled=1 if user.disabled else 0,
                    signup_at=user.signup_at,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            user_id = result.inserted_primary_key[0]
        return self.get_by_id(user_id)

    def update(self, user_id: int, **fields) -> User | None:
        """Update mutable fields on an existing user and return the refreshed record.

        Accepted fields: role, disabled, signup_at. disabled must be passed as
        bool; this method converts to int for SQLite.

        Returns None if user_id was not found.
        """
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)!r}")
        if "disabled" in fields:
            fields["disabled"] = 1 if fields["disabled"] else 0
        if fields:
            with self.engine.connect() as conn:
                conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
                conn.commit()
        return self.get_by_id(user_id)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        role=row.role,
        disabled=bool(row.disabled),
        signup_at=row.signup_at,
        created_at=row.created_at,
    )
