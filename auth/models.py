"""
auth/models.py -- Domain dataclass for the user account.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in core/models.py and contacts/models.py -- dataclasses own domain shape;
stores and routes do the work.

Layer rule: no imports from api/, contacts/, or cache/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """Represents a SafeHaven account.

    email is the login identifier and is stored lower-cased.

    hashed_password is None for Google-only users (they have no local password).
    google_id is None until the user signs in with Google for the first time,
    at which point link_google() fills it in.

    otp / otp_expiry hold the single outstanding one-time code, used both for
    email verification and for password reset. Both are None when no code is
    outstanding.

    reset_verified_until is set when verify-reset-otp accepts a code; until
    then reset-password may be called with the new password alone.
    """

    name: str
    email: str
    id: int | None = None
    hashed_password: str | None = None  # None = Google-only user
    google_id: str | None = None
    is_verified: bool = False
    otp: str | None = None
    otp_expiry: str | None = None  # ISO 8601 UTC
    reset_verified_until: str | None = None  # ISO 8601 UTC
    created_at: str | None = None
