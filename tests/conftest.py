"""
tests/conftest.py -- Shared test fixtures for SafeHaven integration tests.

This module provides:
  - RecordingMailer: stands in for auth.mailer.Mailer and records every send
  - _make_test_stores(): creates isolated in-memory DBs for users + contacts
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api: a module-scoped ApiHarness (client, stores, mailer) with make_user()
    and bearer() helpers

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

DEBUG and ALLOWED_HOSTS must be set before any api/auth import: get_settings()
auto-generates SECRET_KEY only in debug mode, and TrustedHostMiddleware is
configured at import time and must accept TestClient's "testserver" host.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from unittest.mock import MagicMock

# CRITICAL: Set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.mailer import MailError
from auth.models import User
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password
from contacts.store import ContactStore

# Per-IP limits would trip across a module's worth of requests from one client.
limiter.enabled = False


# ---------------------------------------------------------------------------
# Mailer double
# ---------------------------------------------------------------------------


@dataclass
class SentMail:
    to: str
    subject: str
    html: str


@dataclass
class RecordingMailer:
    """Records sends instead of talking SMTP. Addresses in fail_for raise MailError."""

    sent: list[SentMail] = field(default_factory=list)
    fail_for: set[str] = field(default_factory=set)
    configured: bool = True

    def send(self, to: str, subject: str, html: str) -> None:
        if to in self.fail_for:
            raise MailError(f"refused: {to}")
        self.sent.append(SentMail(to, subject, html))

    def to(self, address: str) -> list[SentMail]:
        return [m for m in self.sent if m.to == address]


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, ContactStore]:
    """Create isolated named shared-memory SQLite stores for test isolation.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    auth_url = f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true"
    contacts_url = f"sqlite:///file:test_contacts_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=auth_url), ContactStore(db_url=contacts_url)


def _patch_lifespan(user_store: UserStore, contact_store: ContactStore, mailer: RecordingMailer):
    """Return an async context manager that replaces the real lifespan.

    The feed cache and OAuth registry are mocks so no test touches the network
    or the on-disk cache. The purge_task is a long-sleeping coroutine (a real
    asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.contact_store = contact_store
        app.state.mailer = mailer
        app.state.cache = MagicMock()
        app.state.oauth = MagicMock()
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


# ---------------------------------------------------------------------------
# Module-scoped fixture -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@dataclass
class ApiHarness:
    client: TestClient
    user_store: UserStore
    contact_store: ContactStore
    mailer: RecordingMailer

    def make_user(
        self,
        email: str,
        password: str = "correct-horse-9",
        name: str = "Test User",
        verified: bool = True,
    ) -> tuple[int, str]:
        """Insert a user directly and return (user_id, bearer token)."""
        uid = self.user_store.create_user(
            User(name=name, email=email, hashed_password=hash_password(password), is_verified=verified)
        )
        return uid, create_access_token(uid, email, name)

    @staticmethod
    def bearer(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="module")
def api(request) -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness backed by isolated in-memory stores.

    Tests hit the real route handlers and middleware; only the lifespan
    resources are swapped. Each test module gets its own databases.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    user_store, contact_store = _make_test_stores(suffix)
    mailer = RecordingMailer()

    app.router.lifespan_context = _patch_lifespan(user_store, contact_store, mailer)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield ApiHarness(client, user_store, contact_store, mailer)

    user_store.close()
    contact_store.close()
