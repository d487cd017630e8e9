"""
contacts/store.py -- SQLAlchemy Core persistence layer for emergency contacts.

Pattern: Repository + Data Mapper.
ContactStore is the repository; _row_to_contact is the mapper.

Ownership: every read, update and delete takes the caller's user_id and puts
it in the WHERE clause next to the contact id. A contact that belongs to
someone else is indistinguishable from one that does not exist, so routes
answer 404 in both cases and never leak another user's data.

DB path: contacts/safehaven_contacts.db
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, create_engine, event
from sqlalchemy.engine import Engine

from contacts.models import EmergencyContact

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'safehaven_contacts.db'}"

# Fields a caller may change through update_contact().
_MUTABLE_FIELDS = {"name", "email", "phone", "relation"}

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_contacts = Table(
    "emergency_contacts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255)),
    Column("phone", String(40), nullable=False),
    Column("relation", String(100)),
    Column("created_at", String(32), nullable=False),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class ContactStore:
    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def create_contact(self, contact: EmergencyContact) -> int:
        """Insert a contact and return its assigned database ID."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _contacts.insert().values(
                    user_id=contact.user_id,
                    name=contact.name,
                    email=contact.email,
                    phone=contact.phone,
                    relation=contact.relation,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def list_contacts(self, user_id: int) -> list[EmergencyContact]:
        """Return the user's contacts in creation order."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _contacts.select().where(_contacts.c.user_id == user_id).order_by(_contacts.c.id)
            ).fetchall()
        return [_row_to_contact(r) for r in rows]

    def get_contact(self, user_id: int, contact_id: int) -> Optional[EmergencyContact]:
        """Fetch one contact owned by user_id. Returns None if missing or not owned."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _contacts.select().where((_contacts.c.id == contact_id) & (_contacts.c.user_id == user_id))
            ).fetchone()
        return _row_to_contact(row) if row is not None else None

    def update_contact(self, user_id: int, contact_id: int, **fields) -> bool:
        """Update mutable fields on a contact owned by user_id.

        Accepts any subset of: name, email, phone, relation.
        Returns True if a row was updated, False if missing or not owned.

        Raises ValueError on an unknown field name.
        """
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown contact fields: {sorted(unknown)}")
        if not fields:
            return self.get_contact(user_id, contact_id) is not None
        with self.engine.connect() as conn:
            result = conn.execute(
                _contacts.update()
                .where((_contacts.c.id == contact_id) & (_contacts.c.user_id == user_id))
                .values(**fields)
            )
            conn.commit()
        return result.rowcount > 0

    def delete_contact(self, user_id: int, contact_id: int) -> bool:
        """Delete a contact owned by user_id. Returns False if missing or not owned."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _contacts.delete().where((_contacts.c.id == contact_id) & (_contacts.c.user_id == user_id))
            )
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_contact(row) -> EmergencyContact:
    return EmergencyContact(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        email=row.email,
        phone=row.phone,
        relation=row.relation,
        created_at=row.created_at,
    )
