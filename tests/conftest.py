"""
tests/conftest.py -- Shared test fixtures for AccountGuard.

This module provides:
  - FakeClock: a settable clock injected into the services so lockout and
    token-expiry tests move time instead of sleeping
  - store / policy / clock / services: unit-test wiring over an in-memory DB
  - _patch_lifespan(): wires test services into app.state, bypassing real startup
  - api_client: TestClient over the real app with an admin account and token

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the TestClient because it runs route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. Unit tests run on one thread and use plain :memory:.

DEBUG and LOGIN_RATE_LIMIT must be set before any auth/core import because
get_settings() is cached on first call. bcrypt cost is not taken from the
environment: every test policy carries bcrypt_rounds=4.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

# CRITICAL: Set env before any auth/core import so get_settings() auto-generates
# SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app, attach_services
from auth.accounts import AccountService
from auth.auditor import AccessAuditor
from auth.login import CredentialVerifier
from auth.models import RequestMeta
from auth.store import AccountStore
from auth.tokens import TokenService
from auth.workflows import PasswordResetWorkflow, VerificationWorkflow
from core.config import AuthPolicy, get_settings

META = RequestMeta(ip="203.0.113.7", browser="pytest-agent", country="NL")
TEST_BCRYPT_ROUNDS = 4


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[AccountStore, None, None]:
    s = AccountStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def policy() -> AuthPolicy:
    """Small numbers so tests stay short: 3 attempts, 10 minute block, 1 hour tokens, cheapest bcrypt."""
    return AuthPolicy(
        attempt_limit=3,
        block_duration=timedelta(minutes=10),
        token_lifetime=timedelta(hours=1),
        expose_verification=True,
        bcrypt_rounds=TEST_BCRYPT_ROUNDS,
    )


@pytest.fixture
def services(store, policy, clock) -> SimpleNamespace:
    """All auth services wired around one store, policy and clock."""
    auditor = AccessAuditor(store)
    tokens = TokenService.from_settings(get_settings(), store, auditor, policy=policy, clock=clock)
    return SimpleNamespace(
        store=store,
        policy=policy,
        clock=clock,
        auditor=auditor,
        tokens=tokens,
        verifier=CredentialVerifier(store, tokens, auditor, policy, clock=clock),
        verification=VerificationWorkflow(store),
        resets=PasswordResetWorkflow(store, policy),
        accounts=AccountService(store, tokens, policy),
    )


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(store: AccountStore, policy: AuthPolicy):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store into app.state so TestClient routes see an isolated
    in-memory DB rather than the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        attach_services(app, store, get_settings(), policy=policy)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, admin_token, admin_id) for API integration tests.

    One TestClient per test module. Each module gets its own named in-memory
    DB, derived from the module name, so accounts do not leak between modules.
    """
    suffix = os.environ.get("PYTEST_CURRENT_TEST", "api").split("::")[0].replace("/", "_").replace(".", "_")
    store = AccountStore(db_url=f"sqlite:///file:test_{suffix}?mode=memory&cache=shared&uri=true")
    policy = AuthPolicy(
        attempt_limit=3,
        block_duration=timedelta(minutes=10),
        expose_verification=True,
        bcrypt_rounds=TEST_BCRYPT_ROUNDS,
    )

    app.router.lifespan_context = _patch_lifespan(store, policy)

    with TestClient(app, raise_server_exceptions=True) as client:
        admin = app.state.accounts.create_account(
            "Test Admin", "admin@example.com", "adminpass123", "admin", verified=True
        )
        token = app.state.tokens.issue(admin.id)
        yield client, token, admin.id

    store.close()


def auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
