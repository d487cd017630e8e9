"""
contacts/models.py -- Domain dataclass for an emergency contact.

Pure data container with zero logic. Ownership checks live in
contacts/store.py, where every query is scoped by user_id.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class EmergencyContact:
    """A person to notify when the owning user raises an emergency.

    phone is required. email is optional, and contacts without one are
    skipped by the send-email action.

    id is None before the record is written to the database.
    """

    user_id: int
    name: str
    phone: str
    email: Optional[str] = None
    relation: Optional[str] = None
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert
