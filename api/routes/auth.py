"""
api/routes/auth.py -- Account, OTP and session REST endpoints.

Routes:
  POST /api/auth/register          -- create unverified account, email an OTP
  POST /api/auth/verify-otp        -- confirm email with the OTP; returns a token
  POST /api/auth/resend-otp        -- issue and email a fresh OTP
  POST /api/auth/login             -- password login; returns a token
  POST /api/auth/forgot-password   -- email a reset OTP (same answer for unknown emails)
  POST /api/auth/verify-reset-otp  -- check a reset OTP and open a short reset window
  POST /api/auth/reset-password    -- set a new password with the OTP or inside the window
  GET  /api/auth/me                -- current user (requires auth)
  POST /api/auth/logout            -- tokens are stateless; message only
  GET  /api/auth/google            -- redirect to Google
  GET  /api/auth/google/callback   -- finish Google sign-in, redirect to the frontend

Security:
  Login and every OTP route are rate-limited per IP (Settings.login_rate_limit,
  Settings.otp_rate_limit).
  authenticate_user() provides timing equalization -- use it, never inline.
  Cache-Control: no-store on every response that carries a token.
  forgot-password, verify-reset-otp and reset-password never reveal whether
  an email is registered.

Handlers that hash passwords or send mail are plain `def` so FastAPI runs them
in its threadpool; bcrypt and smtplib both block.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter, login_limit, otp_limit
from api.models import (
    AuthResponse,
    EmailRequest,
    LoginRequest,
    MessageResponse,
    OtpRequest,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    UserResponse,
)
from auth.dependencies import get_current_user
from auth.mailer import Mailer, MailError, otp_email
from auth.models import User
from auth.oauth import get_google_user_info
from auth.otp import check_otp, generate_otp, otp_expiry, reset_window_open
from auth.store import UserStore
from auth.tokens import authenticate_user, create_access_token, hash_password
from core.config import get_settings

logger = logging.getLogger("safehaven.auth")

# Auth policy: every route is public except GET /auth/me.
router = APIRouter()

_FORGOT_MESSAGE = "If an account exists for that email, a reset code has been sent."

_OTP_ERRORS = {
    "invalid": (400, "invalid_otp", "Invalid OTP."),
    "expired": (400, "otp_expired", "OTP has expired. Request a new one."),
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _fail(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"code": code, "message": message})


def _issue_otp(request: Request, user: User, purpose: str) -> None:
    """Store a fresh code for the user and email it.

    Raises MailError if the mail server refuses the message; the code stays
    stored so a later resend replaces it.
    """
    settings = get_settings()
    user_store: UserStore = request.app.state.user_store
    mailer: Mailer = request.app.state.mailer

    otp = generate_otp()
    user_store.set_otp(user.id, otp, otp_expiry(settings.otp_expire_seconds))
    subject, html = otp_email(user.name, otp, purpose, max(1, settings.otp_expire_seconds // 60))
    mailer.send(user.email, subject, html)


def _token_response(user: User, message: str) -> JSONResponse:
    settings = get_settings()
    body = AuthResponse(
        message=message,
        token=create_access_token(user.id, user.email, user.name),
        expires_in=settings.token_expire_seconds,
        user=UserResponse.from_user(user),
    )
    resp = JSONResponse(status_code=200, content=body.model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _checked_otp_user(request: Request, email: str, otp: str, hide_unknown: bool) -> User:
    """Return the user whose outstanding code matches, or raise the matching 4xx.

    hide_unknown=True reports an unknown email as invalid_otp instead of 404.
    """
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_email(email)
    if user is None:
        if hide_unknown:
            raise _fail(*_OTP_ERRORS["invalid"])
        raise _fail(404, "not_found", "User not found.")
    result = check_otp(user, otp)
    if result != "ok":
        raise _fail(*_OTP_ERRORS[result])
    return user


# ---------------------------------------------------------------------------
# Registration and verification
# ---------------------------------------------------------------------------


@limiter.limit(otp_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/register", response_model=RegisterResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> RegisterResponse:
    """Create an unverified account and email it a verification code."""
    user_store: UserStore = request.app.state.user_store

    if user_store.get_by_email(body.email) is not None:
        raise _fail(400, "user_exists", "User already exists.")

    try:
        user_id = user_store.create_user(
            User(name=body.name, email=body.email, hashed_password=hash_password(body.password))
        )
    except IntegrityError as exc:
        # A concurrent request registered the same email first.
        raise _fail(400, "user_exists", "User already exists.") from exc

    user = user_store.get_by_id(user_id)
    logger.info("Registered user id=%s", user_id)
    try:
        _issue_otp(request, user, "verification")
    except MailError as exc:
        raise _fail(
            502, "email_failed", "Account created but the verification email could not be sent. Use resend-otp."
        ) from exc

    return RegisterResponse(message="Registered. Check your email for the verification code.", email=user.email)


@limiter.limit(otp_limit)
@router.post("/auth/verify-otp", response_model=AuthResponse)
def verify_otp(request: Request, body: OtpRequest) -> JSONResponse:
    """Confirm the email address; the account can log in from here on."""
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_email(body.email)
    if user is not None and user.is_verified:
        raise _fail(400, "already_verified", "Email is already verified.")

    user = _checked_otp_user(request, body.email, body.otp, hide_unknown=False)
    user_store.mark_verified(user.id)
    logger.info("Verified user id=%s", user.id)
    return _token_response(user_store.get_by_id(user.id), "Email verified.")


@limiter.limit(otp_limit)
@router.post("/auth/resend-otp", response_model=MessageResponse)
def resend_otp(request: Request, body: EmailRequest) -> MessageResponse:
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_email(body.email)
    if user is None:
        raise _fail(404, "not_found", "User not found.")
    if user.is_verified:
        raise _fail(400, "already_verified", "Email is already verified.")

    try:
        _issue_otp(request, user, "verification")
    except MailError as exc:
        raise _fail(502, "email_failed", "The verification email could not be sent.") from exc
    return MessageResponse(message="A new verification code has been sent.")


# ---------------------------------------------------------------------------
# Login / session
# ---------------------------------------------------------------------------


@limiter.limit(login_limit)
@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return a bearer token.

    Wrong email, wrong password and Google-only accounts all get the same
    bad_credentials answer. The verification check runs only after the
    password matched, so it cannot be used to probe for accounts.
    """
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.email, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid email or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    if not user.is_verified:
        raise _fail(403, "email_not_verified", "Please verify your email before logging in.")

    logger.info("Login user id=%s", user.id)
    return _token_response(user, "Login successful.")


@router.get("/auth/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return identity information for the currently authenticated user."""
    return UserResponse.from_user(current_user)


@router.post("/auth/logout", response_model=MessageResponse)
async def logout() -> MessageResponse:
    """Tokens are stateless; the client discards its copy."""
    return MessageResponse(message="Logged out.")


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


def _send_reset_code(request: Request, user: User) -> None:
    try:
        _issue_otp(request, user, "reset")
    except MailError:
        logger.warning("Reset email for user id=%s could not be sent", user.id)


@limiter.limit(otp_limit)
@router.post("/auth/forgot-password", response_model=MessageResponse)
def forgot_password(request: Request, body: EmailRequest, background_tasks: BackgroundTasks) -> MessageResponse:
    """Email a reset code. Answers identically whether or not the email is registered.

    The code is issued and mailed after the response is sent, so a slow SMTP
    server does not show up in the response time for known emails.
    """
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_email(body.email)
    if user is not None:
        background_tasks.add_task(_send_reset_code, request, user)
    return MessageResponse(message=_FORGOT_MESSAGE)


@limiter.limit(otp_limit)
@router.post("/auth/verify-reset-otp", response_model=MessageResponse)
def verify_reset_otp(request: Request, body: OtpRequest) -> MessageResponse:
    """Check a reset code so the client can show the new-password form.

    The code is not consumed. It also opens a reset window of
    Settings.reset_window_seconds during which reset-password needs no code.
    """
    user_store: UserStore = request.app.state.user_store
    user = _checked_otp_user(request, body.email, body.otp, hide_unknown=True)
    user_store.mark_reset_verified(user.id, otp_expiry(get_settings().reset_window_seconds))
    return MessageResponse(message="OTP verified.")


@limiter.limit(otp_limit)
@router.post("/auth/reset-password", response_model=MessageResponse)
def reset_password(request: Request, body: ResetPasswordRequest) -> MessageResponse:
    """Set a new password given a valid reset code or an open reset window."""
    user_store: UserStore = request.app.state.user_store
    if body.otp is not None:
        user = _checked_otp_user(request, body.email, body.otp, hide_unknown=True)
    else:
        user = user_store.get_by_email(body.email)
        if user is None or not reset_window_open(user):
            raise _fail(*_OTP_ERRORS["invalid"])
    user_store.update_password(user.id, hash_password(body.password))
    logger.info("Password reset for user id=%s", user.id)
    return MessageResponse(message="Password has been reset. You can now log in.")


# ---------------------------------------------------------------------------
# Google sign-in
# ---------------------------------------------------------------------------


def _frontend_redirect(path: str) -> RedirectResponse:
    resp = RedirectResponse(get_settings().frontend_url.rstrip("/") + path, status_code=302)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/auth/google")
async def google_login(request: Request) -> RedirectResponse:
    """Redirect the browser to Google's consent page."""
    if not get_settings().google_enabled:
        raise _fail(404, "provider_disabled", "Google sign-in is not configured.")
    client = request.app.state.oauth.create_client("google")
    redirect_uri = str(request.url_for("google_callback"))
    return await client.authorize_redirect(request, redirect_uri)


@router.get("/auth/google/callback", name="google_callback")
async def google_callback(request: Request) -> RedirectResponse:
    """Finish Google sign-in and hand the token to the frontend.

    Flow:
      1. Exchange authorization code for token (authlib checks state via session).
      2. Extract verified email, name and subject -- ValueError if unverified.
      3. Look up by google_id -- fast path for returning users.
      4. Else look up by email and link the Google identity.
      5. Else create a verified account with no password.
      6. Redirect to FRONTEND_URL/google-success?token=<jwt>.
    Any failure redirects to FRONTEND_URL/login?error=oauth_failed.
    """
    if not get_settings().google_enabled:
        raise _fail(404, "provider_disabled", "Google sign-in is not configured.")

    user_store: UserStore = request.app.state.user_store
    client = request.app.state.oauth.create_client("google")

    try:
        token = await client.authorize_access_token(request)
    except OAuthError:
        logger.exception("Google token exchange failed")
        return _frontend_redirect("/login?error=oauth_failed")

    try:
        email, name, google_id = get_google_user_info(token)
    except ValueError:
        logger.warning("Google sign-in rejected: unverified or missing email")
        return _frontend_redirect("/login?error=oauth_failed")

    user = user_store.get_by_google_id(google_id)
    if user is None:
        user = user_store.get_by_email(email)
        if user is not None and user.google_id not in (None, google_id):
            logger.warning("Google sign-in rejected: user id=%s is linked to another Google account", user.id)
            return _frontend_redirect("/login?error=oauth_failed")
        if user is None:
            try:
                user_store.create_user(User(name=name, email=email, google_id=google_id, is_verified=True))
            except IntegrityError:
                pass  # created by a concurrent callback; linked below
            user = user_store.get_by_email(email)
        user_store.link_google(user.id, google_id)
        user = user_store.get_by_id(user.id)

    token_str = create_access_token(user.id, user.email, user.name)
    return _frontend_redirect(f"/google-success?token={token_str}")
