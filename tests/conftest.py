"""
Shared test fixtures.

Provides:
  • ``database`` – an initialised temporary SQLite database for
    service-level tests (no HTTP)
  • ``client`` – a FastAPI TestClient running the full lifespan against a
    temp database, a fake Stripe gateway and auth bypassed as ``PLAYER``
  • ``unauthed_client`` – same, without the auth override
  • ``as_user`` – switch the authenticated user of ``client``

API tests seed rows through ``run``, which calls an async helper on the
app's event loop.
"""

from __future__ import annotations

import functools

import pytest
from fastapi.testclient import TestClient

from booking_engine import db
from booking_engine.dependencies import get_current_user
from booking_engine.main import app
from booking_engine.models import UserInfo
from tests.mocks.models import PLAYER
from tests.mocks.services import FakeGateway


# ── Fixtures ───────────────────────────────────────────────────────────────


@pytest.fixture()
def _test_env(monkeypatch, tmp_path) -> FakeGateway:
    """
    Internal fixture that points the DB at a temp file, swaps in the fake
    gateway and keeps the reminder sweep and rate limiter out of the way.
    """
    # ── Temp database ─────────────────────────────────────────────────
    monkeypatch.setattr(db, "DB_PATH", str(tmp_path / "test.db"))

    # ── Fake payment gateway ──────────────────────────────────────────
    gateway = FakeGateway()
    monkeypatch.setattr("booking_engine.main.build_gateway", lambda: gateway)

    # ── No background sweep ───────────────────────────────────────────
    monkeypatch.setattr("booking_engine.main.REMINDERS_ENABLED", False)

    # ── Disable rate limiting in tests ────────────────────────────────
    from booking_engine.rate_limit import limiter as _limiter
    monkeypatch.setattr(_limiter, "enabled", False)

    return gateway


@pytest.fixture()
def gateway(_test_env: FakeGateway) -> FakeGateway:
    """Public alias for tests that inspect gateway calls."""
    return _test_env


@pytest.fixture()
async def database(monkeypatch, tmp_path):
    """Initialised temp database for tests that call services directly."""
    monkeypatch.setattr(db, "DB_PATH", str(tmp_path / "test.db"))
    await db.init_db()
    yield
    await db.close_db()


@pytest.fixture()
def client(_test_env: FakeGateway) -> TestClient:
    """
    FastAPI TestClient with the fake gateway, temp DB, and auth bypassed.

    Uses a context manager so the lifespan runs (DB init/shutdown).
    """
    async def _mock_current_user():
        return PLAYER

    app.dependency_overrides[get_current_user] = _mock_current_user

    with TestClient(app, raise_server_exceptions=False) as tc:
        yield tc

    app.dependency_overrides.clear()


@pytest.fixture()
def as_user(client: TestClient):
    """Call ``as_user(STAFF)`` to make subsequent requests as another user."""

    def _switch(user: UserInfo) -> None:
        async def _current_user():
            return user

        app.dependency_overrides[get_current_user] = _current_user

    return _switch


@pytest.fixture()
def unauthed_client(_test_env: FakeGateway) -> TestClient:
    """
    TestClient without auth overrides: requests are rejected unless
    a session cookie or bearer token is provided.
    """
    app.dependency_overrides.clear()

    with TestClient(app, raise_server_exceptions=False) as tc:
        yield tc

    app.dependency_overrides.clear()


@pytest.fixture()
def run(client: TestClient):
    """``run(async_fn, *args, **kwargs)`` on the running app's event loop."""

    def _run(fn, *args, **kwargs):
        return client.portal.call(functools.partial(fn, *args, **kwargs))

    return _run
