"""
tests/conftest.py -- Shared test fixtures for FieldPass unit and integration tests.

This module provides:
  - FixedClock: a settable "now" injected wherever a clock is taken
  - seed: isolated in-memory user / directory / grant stores with a small,
    known data set (one plain department, one sensitive department, one
    audit, an auditor and a lead auditor)
  - service: an AccessGrantService over the seed stores, pinned to the clock
  - api_env / api_client: TestClient over the real FastAPI app with a patched
    lifespan and one JWT per role

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

Environment variables must be set before any api/auth/core import:
get_settings() is cached at first call and the route rate limits read
that cached instance on every request.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")
# One shared limiter counts every request in the session; keep it out of the way.
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("SCAN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("VERIFY_CODE_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import User
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password
from core.config import Settings
from directory.lookup import DirectoryLookup
from directory.models import Audit, Department, SensitiveArea
from directory.store import DirectoryStore
from grants.service import AccessGrantService
from grants.store import GrantStore

T0 = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)

PLAIN_DEPT = "HR"
SENSITIVE_DEPT = "LAB"
AUDIT_ID = "A-2026-01"


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(T0)


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _memory_url(name: str) -> str:
    return f"sqlite:///file:{name}?mode=memory&cache=shared&uri=true"


def _make_test_stores(db_suffix: str) -> tuple[UserStore, DirectoryStore, GrantStore]:
    """Create isolated named shared-memory SQLite stores.

    Args:
        db_suffix: Unique string appended to each DB name so tests and test
                   modules never share state.
    """
    return (
        UserStore(db_url=_memory_url(f"test_auth_{db_suffix}")),
        DirectoryStore(db_url=_memory_url(f"test_directory_{db_suffix}")),
        GrantStore(db_url=_memory_url(f"test_grants_{db_suffix}")),
    )


def _seed_directory(directory: DirectoryStore) -> None:
    directory.create_department(Department(name="Human Resources", dept_id=PLAIN_DEPT))
    directory.create_department(Department(name="Research Lab", dept_id=SENSITIVE_DEPT))
    directory.add_sensitive_area(SensitiveArea(dept_id=SENSITIVE_DEPT, area="Server room", level="High"))
    directory.create_audit(Audit(title="ISO 27001 surveillance", audit_id=AUDIT_ID, start_date="2026-03-01"))


def _create_user(store: UserStore, username: str, role: str, full_name: str = "") -> int:
    return store.create_user(
        User(
            username=username,
            hashed_password=hash_password("testpass123"),
            role=role,
            full_name=full_name,
        )
    )


@dataclass
class Seed:
    users: UserStore
    directory: DirectoryStore
    grants: GrantStore
    lookup: DirectoryLookup
    auditor_id: str
    lead_id: str
    plain_dept: str = PLAIN_DEPT
    sensitive_dept: str = SENSITIVE_DEPT
    audit_id: str = AUDIT_ID

    def close(self) -> None:
        self.grants.close()
        self.directory.close()
        self.users.close()


@pytest.fixture
def seed() -> Generator[Seed, None, None]:
    """Fresh seeded stores for one test."""
    users, directory, grants = _make_test_stores(uuid.uuid4().hex)
    _seed_directory(directory)
    auditor_id = _create_user(users, "ada", "auditor", full_name="Ada Auditor")
    lead_id = _create_user(users, "lee", "lead_auditor", full_name="Lee Lead")
    s = Seed(
        users=users,
        directory=directory,
        grants=grants,
        lookup=DirectoryLookup(directory, users),
        auditor_id=str(auditor_id),
        lead_id=str(lead_id),
    )
    yield s
    s.close()


@pytest.fixture
def make_service(seed: Seed, clock: FixedClock):
    """Factory for services over the seed stores with Settings overrides."""

    def factory(**overrides) -> AccessGrantService:
        settings = Settings(debug=True, public_base_url="https://fieldpass.test", **overrides)
        return AccessGrantService(seed.grants, seed.lookup, settings=settings, clock=clock)

    return factory


@pytest.fixture
def service(make_service) -> AccessGrantService:
    return make_service()


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, directory: DirectoryStore, service: AccessGrantService):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so TestClient routes see
    isolated test DBs rather than the on-disk databases.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.directory = directory
        app.state.lookup = service.lookup
        app.state.grant_store = service.store
        app.state.grants = service
        yield

    return test_lifespan


@dataclass
class ApiEnv:
    client: TestClient
    clock: FixedClock
    service: AccessGrantService
    directory: DirectoryStore
    user_ids: dict[str, int] = field(default_factory=dict)
    tokens: dict[str, str] = field(default_factory=dict)

    def headers(self, username: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.tokens[username]}"}

    def uid(self, username: str) -> str:
        return str(self.user_ids[username])


_API_USERS = (
    ("testadmin", "admin", "Test Admin"),
    ("lead", "lead_auditor", "Lee Lead"),
    ("ada", "auditor", "Ada Auditor"),
    ("bob", "auditor", "Bob Auditor"),
    ("owner", "auditee_owner", "Olga Owner"),
)


@pytest.fixture(scope="module")
def api_env() -> Generator[ApiEnv, None, None]:
    """Yield an ApiEnv for API integration tests, one per test module.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use isolated in-memory stores. The
    grant service runs on a FixedClock starting at the real current time,
    so tests can move it without waiting.
    """
    suffix = f"api_{uuid.uuid4().hex}"
    user_store, directory, grant_store = _make_test_stores(suffix)
    _seed_directory(directory)

    env_clock = FixedClock(datetime.now(timezone.utc).replace(microsecond=0))
    settings = Settings(debug=True, public_base_url="https://fieldpass.test")
    service = AccessGrantService(grant_store, DirectoryLookup(directory, user_store), settings=settings, clock=env_clock)

    user_ids: dict[str, int] = {}
    tokens: dict[str, str] = {}
    for username, role, full_name in _API_USERS:
        uid = _create_user(user_store, username, role, full_name=full_name)
        user_ids[username] = uid
        tokens[username] = create_access_token(user_id=uid, username=username, role=role, expire_seconds=3600)

    app.router.lifespan_context = _patch_lifespan(user_store, directory, service)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiEnv(
            client=client,
            clock=env_clock,
            service=service,
            directory=directory,
            user_ids=user_ids,
            tokens=tokens,
        )

    grant_store.close()
    directory.close()
    user_store.close()


@pytest.fixture(scope="module")
def api_client(api_env: ApiEnv) -> tuple[TestClient, str, int]:
    """(client, admin_token, admin_id) for tests that only need an admin."""
    return api_env.client, api_env.tokens["testadmin"], api_env.user_ids["testadmin"]
