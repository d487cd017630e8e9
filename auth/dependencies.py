"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

SafeHaven clients authenticate with an Authorization: Bearer <jwt> header.
There is no cookie session; the React frontend stores the token itself.

get_current_user() raises HTTP 401 with one of two codes:
  missing_token -- no Bearer header at all
  invalid_token -- bad signature, expired, or the user no longer exists

Layer rule: no imports from contacts/ or cache/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import User
from auth.tokens import decode_access_token


def _unauthorized(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail={"code": code, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(request: Request) -> User:
    """Require a valid bearer token. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer ") or not auth_header[7:].strip():
        raise _unauthorized("missing_token", "Missing token.")

    payload = decode_access_token(auth_header[7:].strip())
    if payload is None:
        raise _unauthorized("invalid_token", "Invalid or expired token.")

    user = request.app.state.user_store.get_by_id(payload["user_id"])
    if user is None:
        raise _unauthorized("invalid_token", "Invalid or expired token.")
    return user
