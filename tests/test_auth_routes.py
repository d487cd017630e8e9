"""
tests/test_auth_routes.py -- Integration tests for /api/auth/*.

Covers:
  - registration stores an unverified user and emails a 6-digit code
  - registering the same email twice is rejected (any casing)
  - login before verification is refused with 403
  - verify-otp: wrong code, expired code, already verified
  - resend-otp replaces the outstanding code
  - forgot / verify-reset / reset flow; reset consumes the OTP
  - reset-password with newPassword alone inside the verified-code window
  - bearer token handling on /me
  - Google routes answer provider_disabled when unconfigured
  - Google callback creates, links or refuses accounts
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from authlib.integrations.starlette_client import OAuthError

from auth.tokens import create_access_token, verify_password

_PASSWORD = "s3cure-enough-pw"


def _register(api, email: str, name: str = "Ada"):
    return api.client.post("/api/auth/register", json={"name": name, "email": email, "password": _PASSWORD})


def _stored_otp(api, email: str) -> str:
    return api.user_store.get_by_email(email).otp


def _expire_otp(api, email: str) -> None:
    user = api.user_store.get_by_email(email)
    past = (datetime.now(timezone.utc) - timedelta(minutes=1)).isoformat()
    api.user_store.set_otp(user.id, user.otp, past)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class TestRegister:
    def test_register_creates_unverified_user_and_sends_code(self, api):
        resp = _register(api, "reg1@example.com")
        assert resp.status_code == 201
        assert resp.json()["email"] == "reg1@example.com"

        user = api.user_store.get_by_email("reg1@example.com")
        assert user is not None
        assert user.is_verified is False
        assert user.otp is not None and len(user.otp) == 6 and user.otp.isdigit()
        assert verify_password(_PASSWORD, user.hashed_password)

        mails = api.mailer.to("reg1@example.com")
        assert len(mails) == 1
        assert user.otp in mails[0].html

    def test_register_twice_rejected(self, api):
        assert _register(api, "twice@example.com").status_code == 201
        resp = _register(api, "twice@example.com")
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "user_exists"

    def test_register_twice_rejected_case_insensitive(self, api):
        assert _register(api, "Case@Example.com").status_code == 201
        resp = _register(api, "case@example.COM")
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "user_exists"

    def test_register_validates_body(self, api):
        resp = api.client.post(
            "/api/auth/register", json={"name": "", "email": "not-an-email", "password": "short"}
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_register_mail_failure_is_502_but_account_exists(self, api):
        api.mailer.fail_for.add("nomail@example.com")
        try:
            resp = _register(api, "nomail@example.com")
        finally:
            api.mailer.fail_for.discard("nomail@example.com")
        assert resp.status_code == 502
        assert resp.json()["error"]["code"] == "email_failed"
        assert api.user_store.get_by_email("nomail@example.com") is not None


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


class TestVerifyOtp:
    def test_login_before_verification_refused(self, api):
        _register(api, "early@example.com")
        resp = api.client.post("/api/auth/login", json={"email": "early@example.com", "password": _PASSWORD})
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "email_not_verified"

    def test_verify_with_correct_code_returns_token(self, api):
        _register(api, "verify@example.com")
        otp = _stored_otp(api, "verify@example.com")

        resp = api.client.post("/api/auth/verify-otp", json={"email": "verify@example.com", "otp": otp})
        assert resp.status_code == 200
        data = resp.json()
        assert data["token"]
        assert data["user"]["is_verified"] is True
        assert resp.headers["Cache-Control"] == "no-store"

        user = api.user_store.get_by_email("verify@example.com")
        assert user.is_verified is True
        assert user.otp is None

    def test_wrong_code_rejected(self, api):
        _register(api, "wrong@example.com")
        otp = _stored_otp(api, "wrong@example.com")
        bad = "000000" if otp != "000000" else "111111"
        resp = api.client.post("/api/auth/verify-otp", json={"email": "wrong@example.com", "otp": bad})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_otp"

    def test_expired_code_rejected(self, api):
        _register(api, "expired@example.com")
        otp = _stored_otp(api, "expired@example.com")
        _expire_otp(api, "expired@example.com")

        resp = api.client.post("/api/auth/verify-otp", json={"email": "expired@example.com", "otp": otp})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "otp_expired"
        assert api.user_store.get_by_email("expired@example.com").is_verified is False

    def test_unknown_email_is_404(self, api):
        resp = api.client.post("/api/auth/verify-otp", json={"email": "ghost@example.com", "otp": "123456"})
        assert resp.status_code == 404

    def test_already_verified_rejected(self, api):
        api.make_user("done@example.com")
        resp = api.client.post("/api/auth/verify-otp", json={"email": "done@example.com", "otp": "123456"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "already_verified"

    def test_malformed_code_is_422(self, api):
        resp = api.client.post("/api/auth/verify-otp", json={"email": "x@example.com", "otp": "12ab"})
        assert resp.status_code == 422


class TestResendOtp:
    def test_resend_replaces_code(self, api):
        _register(api, "resend@example.com")
        first = api.user_store.get_by_email("resend@example.com")

        resp = api.client.post("/api/auth/resend-otp", json={"email": "resend@example.com"})
        assert resp.status_code == 200

        second = api.user_store.get_by_email("resend@example.com")
        assert second.otp is not None
        assert second.otp_expiry >= first.otp_expiry
        assert len(api.mailer.to("resend@example.com")) == 2

    def test_resend_for_verified_user_rejected(self, api):
        api.make_user("resend-done@example.com")
        resp = api.client.post("/api/auth/resend-otp", json={"email": "resend-done@example.com"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "already_verified"

    def test_resend_unknown_is_404(self, api):
        resp = api.client.post("/api/auth/resend-otp", json={"email": "nobody@example.com"})
        assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


class TestLogin:
    def test_login_success(self, api):
        uid, _ = api.make_user("login@example.com", password=_PASSWORD, name="Lin")
        resp = api.client.post("/api/auth/login", json={"email": "login@example.com", "password": _PASSWORD})
        assert resp.status_code == 200
        data = resp.json()
        assert data["user"] == {
            "id": uid,
            "name": "Lin",
            "email": "login@example.com",
            "is_verified": True,
            "google_linked": False,
        }
        assert data["expires_in"] == 3600

        me = api.client.get("/api/auth/me", headers=api.bearer(data["token"]))
        assert me.status_code == 200
        assert me.json()["email"] == "login@example.com"

    def test_wrong_password_and_unknown_email_look_identical(self, api):
        api.make_user("pw@example.com", password=_PASSWORD)
        wrong = api.client.post("/api/auth/login", json={"email": "pw@example.com", "password": "nope-nope"})
        unknown = api.client.post("/api/auth/login", json={"email": "who@example.com", "password": "nope-nope"})
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()
        assert wrong.json()["error"]["code"] == "bad_credentials"

    def test_wrong_password_for_unverified_user_is_401_not_403(self, api):
        api.make_user("unv@example.com", password=_PASSWORD, verified=False)
        resp = api.client.post("/api/auth/login", json={"email": "unv@example.com", "password": "bad-guess"})
        assert resp.status_code == 401


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


class TestPasswordReset:
    def test_forgot_password_same_answer_for_unknown_email(self, api):
        api.make_user("forgot@example.com")
        known = api.client.post("/api/auth/forgot-password", json={"email": "forgot@example.com"})
        unknown = api.client.post("/api/auth/forgot-password", json={"email": "nope@example.com"})
        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()
        assert len(api.mailer.to("forgot@example.com")) == 1
        assert api.mailer.to("nope@example.com") == []

    def test_reset_flow_consumes_otp(self, api):
        api.make_user("reset@example.com", password="old-password-1")
        api.client.post("/api/auth/forgot-password", json={"email": "reset@example.com"})
        otp = _stored_otp(api, "reset@example.com")

        check = api.client.post("/api/auth/verify-reset-otp", json={"email": "reset@example.com", "otp": otp})
        assert check.status_code == 200
        # verify-reset-otp leaves the code in place
        assert _stored_otp(api, "reset@example.com") == otp

        body = {"email": "reset@example.com", "otp": otp, "password": "new-password-2"}
        resp = api.client.post("/api/auth/reset-password", json=body)
        assert resp.status_code == 200
        assert _stored_otp(api, "reset@example.com") is None

        # second use of the same code fails
        again = api.client.post("/api/auth/reset-password", json=body)
        assert again.status_code == 400
        assert again.json()["error"]["code"] == "invalid_otp"

        old = api.client.post("/api/auth/login", json={"email": "reset@example.com", "password": "old-password-1"})
        new = api.client.post("/api/auth/login", json={"email": "reset@example.com", "password": "new-password-2"})
        assert old.status_code == 401
        assert new.status_code == 200

    def test_reset_with_expired_code_rejected(self, api):
        api.make_user("reset-exp@example.com")
        api.client.post("/api/auth/forgot-password", json={"email": "reset-exp@example.com"})
        otp = _stored_otp(api, "reset-exp@example.com")
        _expire_otp(api, "reset-exp@example.com")

        resp = api.client.post(
            "/api/auth/reset-password",
            json={"email": "reset-exp@example.com", "otp": otp, "password": "new-password-2"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "otp_expired"

    def test_verified_code_lets_client_send_new_password_alone(self, api):
        api.make_user("two-step@example.com", password="old-password-1")
        api.client.post("/api/auth/forgot-password", json={"email": "two-step@example.com"})
        otp = _stored_otp(api, "two-step@example.com")

        check = api.client.post("/api/auth/verify-reset-otp", json={"email": "two-step@example.com", "otp": otp})
        assert check.status_code == 200
        assert api.user_store.get_by_email("two-step@example.com").reset_verified_until is not None

        resp = api.client.post(
            "/api/auth/reset-password", json={"email": "two-step@example.com", "newPassword": "new-password-2"}
        )
        assert resp.status_code == 200
        user = api.user_store.get_by_email("two-step@example.com")
        assert user.otp is None
        assert user.reset_verified_until is None
        assert verify_password("new-password-2", user.hashed_password)

        # the window closes once used
        again = api.client.post(
            "/api/auth/reset-password", json={"email": "two-step@example.com", "newPassword": "new-password-3"}
        )
        assert again.status_code == 400
        assert again.json()["error"]["code"] == "invalid_otp"

    def test_reset_without_code_or_window_rejected(self, api):
        api.make_user("no-window@example.com")
        api.client.post("/api/auth/forgot-password", json={"email": "no-window@example.com"})

        resp = api.client.post(
            "/api/auth/reset-password", json={"email": "no-window@example.com", "password": "new-password-2"}
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_otp"

    def test_expired_reset_window_rejected(self, api):
        uid, _ = api.make_user("late@example.com")
        past = (datetime.now(timezone.utc) - timedelta(seconds=1)).isoformat()
        api.user_store.mark_reset_verified(uid, past)

        resp = api.client.post(
            "/api/auth/reset-password", json={"email": "late@example.com", "newPassword": "new-password-2"}
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_otp"

    def test_reset_without_code_for_unknown_email_is_invalid_otp(self, api):
        resp = api.client.post(
            "/api/auth/reset-password", json={"email": "ghost@example.com", "newPassword": "new-password-2"}
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_otp"

    def test_forgot_password_mail_failure_still_answers_200(self, api):
        api.make_user("mail-down@example.com")
        api.mailer.fail_for.add("mail-down@example.com")
        try:
            resp = api.client.post("/api/auth/forgot-password", json={"email": "mail-down@example.com"})
        finally:
            api.mailer.fail_for.discard("mail-down@example.com")
        assert resp.status_code == 200
        assert resp.json()["message"].startswith("If an account exists")

    def test_verify_reset_unknown_email_is_invalid_otp(self, api):
        resp = api.client.post("/api/auth/verify-reset-otp", json={"email": "none@example.com", "otp": "123456"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_otp"


# ---------------------------------------------------------------------------
# Bearer tokens
# ---------------------------------------------------------------------------


class TestBearer:
    def test_me_without_token_is_missing_token(self, api):
        resp = api.client.get("/api/auth/me")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "missing_token"

    def test_me_with_garbage_token_is_invalid_token(self, api):
        resp = api.client.get("/api/auth/me", headers=api.bearer("not.a.jwt"))
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_token"

    def test_token_for_deleted_user_is_invalid(self, api):
        token = create_access_token(999999, "gone@example.com", "Gone")
        resp = api.client.get("/api/auth/me", headers=api.bearer(token))
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_token"

    def test_logout_is_public(self, api):
        resp = api.client.post("/api/auth/logout")
        assert resp.status_code == 200


# ---------------------------------------------------------------------------
# Google
# ---------------------------------------------------------------------------


def test_google_disabled_without_credentials(api):
    resp = api.client.get("/api/auth/google")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "provider_disabled"


class TestGoogleCallback:
    """The provider is mocked on app.state.oauth; settings are patched to enable it."""

    @pytest.fixture
    def google(self, api):
        settings = MagicMock(google_enabled=True, frontend_url="http://localhost:3000")
        client = api.client.app.state.oauth.create_client.return_value
        with patch("api.routes.auth.get_settings", return_value=settings):
            yield client

    @staticmethod
    def _userinfo(client, email, sub, verified=True, name="Gina"):
        client.authorize_access_token = AsyncMock(
            return_value={"userinfo": {"email": email, "sub": sub, "email_verified": verified, "name": name}}
        )

    def test_new_user_created_verified_without_password(self, api, google):
        self._userinfo(google, "new-google@example.com", "g-new")
        resp = api.client.get("/api/auth/google/callback")
        assert resp.status_code == 302
        assert resp.headers["location"].startswith("http://localhost:3000/google-success?token=")

        user = api.user_store.get_by_email("new-google@example.com")
        assert user.is_verified is True
        assert user.hashed_password is None
        assert user.google_id == "g-new"

    def test_existing_email_is_linked(self, api, google):
        uid, _ = api.make_user("link-me@example.com", verified=False)
        self._userinfo(google, "link-me@example.com", "g-link")
        resp = api.client.get("/api/auth/google/callback")
        assert "/google-success?token=" in resp.headers["location"]
        user = api.user_store.get_by_id(uid)
        assert user.google_id == "g-link"
        assert user.is_verified is True

    def test_unverified_google_email_rejected(self, api, google):
        self._userinfo(google, "unverified-google@example.com", "g-unv", verified=False)
        resp = api.client.get("/api/auth/google/callback")
        assert resp.headers["location"] == "http://localhost:3000/login?error=oauth_failed"
        assert api.user_store.get_by_email("unverified-google@example.com") is None

    def test_email_linked_to_other_google_account_rejected(self, api, google):
        uid, _ = api.make_user("taken@example.com")
        api.user_store.link_google(uid, "g-original")
        self._userinfo(google, "taken@example.com", "g-other")
        resp = api.client.get("/api/auth/google/callback")
        assert resp.headers["location"].endswith("/login?error=oauth_failed")
        assert api.user_store.get_by_id(uid).google_id == "g-original"

    def test_provider_error_redirects(self, api, google):
        google.authorize_access_token = AsyncMock(side_effect=OAuthError(error="access_denied"))
        resp = api.client.get("/api/auth/google/callback")
        assert resp.headers["location"].endswith("/login?error=oauth_failed")
