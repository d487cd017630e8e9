"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper.
Route and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Emails are lower-cased on the way in so the UNIQUE constraint on email
  cannot be bypassed by case variations.

  UNIQUE(google_id) is enforced in code rather than SQL because SQLite
  treats two NULL values as distinct in UNIQUE constraints. get_by_google_id()
  is checked before link_google() in the OAuth callback.

DB path: auth/safehaven_auth.db

Layer rule: no imports from api/, contacts/, or cache/.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine

from auth.models import User

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'safehaven_auth.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text),  # NULL for Google-only users
    Column("google_id", Text),
    Column("is_verified", Integer, nullable=False, server_default="0"),
    Column("otp", String(6)),
    Column("otp_expiry", String(32)),
    Column("reset_verified_until", String(32)),
    Column("created_at", String(32), nullable=False),
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


def _normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore()
        store.create_user(User(name="Ada", email="ada@example.com", hashed_password=hash_password("secret")))
        user = store.get_by_email("ada@example.com")
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

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        Callers (POST /register, the Google callback) catch IntegrityError
        as a signal that a concurrent request already created the record.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    name=user.name,
                    email=_normalize_email(user.email),
                    hashed_password=user.hashed_password,
                    google_id=user.google_id,
                    is_verified=1 if user.is_verified else 0,
                    otp=user.otp,
                    otp_expiry=user.otp_expiry,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == _normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_google_id(self, google_id: str) -> User | None:
        """Look up a user by the Google account subject."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.google_id == google_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def set_otp(self, user_id: int, otp: str, expiry: str) -> None:
        """Store a fresh one-time code, replacing any outstanding one and any open reset window."""
        self._update(user_id, otp=otp, otp_expiry=expiry, reset_verified_until=None)

    def mark_reset_verified(self, user_id: int, until: str) -> None:
        """Open a password-reset window after a reset code was checked.

        The code itself stays outstanding; reset-password accepts either.
        """
        self._update(user_id, reset_verified_until=until)

    def mark_verified(self, user_id: int) -> None:
        """Flag the email as verified and consume the outstanding code."""
        self._update(user_id, is_verified=1, otp=None, otp_expiry=None)

    def update_password(self, user_id: int, hashed_password: str) -> None:
        """Replace the password hash; consume the outstanding code and reset window."""
        self._update(user_id, hashed_password=hashed_password, otp=None, otp_expiry=None, reset_verified_until=None)

    def link_google(self, user_id: int, google_id: str) -> None:
        """Associate a Google identity with an existing user.

        Google has already confirmed ownership of the email, so the account
        counts as verified from here on.
        """
        self._update(user_id, google_id=google_id, is_verified=1)

    def _update(self, user_id: int, **values) -> None:
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(**values))
            conn.commit()

    def close(self) -> None:
        """Dispose the connection pool. Call on application shutdown."""
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        hashed_password=row.hashed_password,
        google_id=row.google_id,
        is_verified=bool(row.is_verified),
        otp=row.otp,
        otp_expiry=row.otp_expiry,
        reset_verified_until=row.reset_verified_until,
        created_at=row.created_at,
    )
