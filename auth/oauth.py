"""
auth/oauth.py -- Authlib Google OAuth configuration.

Reads configuration from core.config.get_settings() at module load. Google is
registered only when both client ID and secret are configured; otherwise the
/api/auth/google routes answer 404 provider_disabled.

Security notes:
  Email verification is mandatory. get_google_user_info() raises ValueError
  if Google does not confirm the email is verified. The callback matches
  existing accounts by email, so an unverified address must never link.

  OAuth state parameter (CSRF protection) is handled by authlib automatically
  via Starlette SessionMiddleware.

Layer rule: no imports from api/, contacts/, or cache/. Import from core/
is allowed -- core/ is the kernel layer.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuth

from core.config import get_settings

logger = logging.getLogger("safehaven.auth.oauth")

oauth = OAuth()

_cfg = get_settings()

if _cfg.google_enabled:
    oauth.register(
        name="google",
        client_id=_cfg.google_client_id,
        client_secret=_cfg.google_client_secret,
        server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
        client_kwargs={"scope": "openid email profile"},
    )
    logger.info("Google OAuth provider registered")


def get_google_user_info(token: dict) -> tuple[str, str, str]:
    """Extract (email, name, subject_id) from a Google token response.

    Google returns an id_token whose parsed claims (token["userinfo"]) include
    email, email_verified, name, and sub.

    The email claim is only accepted when email_verified is True. A missing
    email_verified is treated as unverified.

    Raises:
        ValueError: If the userinfo is missing, unverified, or incomplete.
    """
    userinfo = token.get("userinfo")
    if not userinfo:
        raise ValueError("google OAuth: no userinfo in token response")

    if not userinfo.get("email_verified", False):
        raise ValueError("google OAuth: email is not verified")

    email = userinfo.get("email")
    subject_id = userinfo.get("sub")
    if not email or not subject_id:
        raise ValueError("google OAuth: missing email or sub claim in userinfo")

    name = userinfo.get("name") or email.split("@")[0]
    return email, name, subject_id
