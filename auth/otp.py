"""
auth/otp.py -- One-time code generation and checking.

A single code per user is stored in the users table (otp, otp_expiry). It is
issued at registration, on resend and on forgot-password, and is consumed by
verify-otp and reset-password. A reset code accepted by verify-reset-otp also
opens a short reset window (users.reset_verified_until) so the client can send
the new password without repeating the code.

Codes are 6 decimal digits from the secrets module (not random) and are
compared with hmac.compare_digest.

Layer rule: no imports from api/, contacts/, or cache/.
"""

from __future__ import annotations

import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from auth.models import User

OTP_LENGTH = 6

OtpCheck = Literal["ok", "invalid", "expired"]


def generate_otp() -> str:
    """Return a fresh 6-digit numeric code, zero-padded."""
    return f"{secrets.randbelow(10**OTP_LENGTH):0{OTP_LENGTH}d}"


def otp_expiry(seconds: int, now: datetime | None = None) -> str:
    """Return the ISO 8601 UTC instant a code issued now stops being valid."""
    now = now or datetime.now(timezone.utc)
    return (now + timedelta(seconds=seconds)).isoformat()


def check_otp(user: User, submitted: str, now: datetime | None = None) -> OtpCheck:
    """Compare a submitted code against the user's outstanding one.

    A missing or mismatched code is "invalid". A matching code past its
    expiry is "expired". Mismatch is checked first so a wrong guess never
    reveals whether a code is outstanding.
    """
    if not user.otp or not user.otp_expiry:
        return "invalid"
    if not hmac.compare_digest(user.otp.encode(), submitted.strip().encode()):
        return "invalid"
    now = now or datetime.now(timezone.utc)
    if datetime.fromisoformat(user.otp_expiry) < now:
        return "expired"
    return "ok"


def reset_window_open(user: User, now: datetime | None = None) -> bool:
    """True while a reset code checked by verify-reset-otp still authorises a new password."""
    if not user.reset_verified_until:
        return False
    now = now or datetime.now(timezone.utc)
    return datetime.fromisoformat(user.reset_verified_until) >= now
