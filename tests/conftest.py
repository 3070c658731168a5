"""
tests/conftest.py -- Shared test fixtures for ProxyVault integration tests.

This module provides:
  - make_services(): builds the full service graph on an isolated database
  - _patch_lifespan(): wires test services into app.state, bypassing real startup
  - api_env: TestClient plus a seeded SuperAdmin, two departments ("IT",
    "Sales") and one DepartmentManager per department, with tokens

Design: API tests use a temporary SQLite *file* per module rather than a
shared-memory URI. The audit recorder writes from its own worker threads
while TestClient runs handlers in a threadpool; shared-cache memory
databases fail such overlapping writes immediately with "table is locked",
whereas a WAL file database makes the second writer wait.

The DEBUG env var must be set before any auth/core import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app, attach_services
from audit.models import AuditQuery
from auth.models import Role, User
from auth.tokens import create_access_token, hash_password
from core.config import get_settings
from core.database import create_db_engine
from inventory.models import Department
from services.bootstrap import Services, build_services

PASSWORD = "testpass123"

# ---------------------------------------------------------------------------
# Service helpers
# ---------------------------------------------------------------------------


def make_services(db_path: Path) -> Services:
    """Build stores, recorder and services on a fresh SQLite file."""
    engine = create_db_engine(f"sqlite:///{db_path}")
    return build_services(engine, get_settings())


def _patch_lifespan(services: Services):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-built test services into app.state so TestClient routes see the
    isolated test database rather than the production one.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        attach_services(app, services)
        yield

    return test_lifespan


def _create_user(services: Services, username: str, role: Role, department_id: int | None = None) -> User:
    uid = services.user_store.create_user(
        User(username=username, role=role, hashed_password=hash_password(PASSWORD), department_id=department_id)
    )
    return services.user_store.get_by_id(uid)


def token_for(user: User, expire_seconds: int = 3600) -> str:
    return create_access_token(user.id, user.username, user.role.value, expire_seconds=expire_seconds)


# ---------------------------------------------------------------------------
# API environment
# ---------------------------------------------------------------------------


@dataclass
class ApiEnv:
    client: TestClient
    services: Services
    admin: User
    it_manager: User
    sales_manager: User
    it_dept: Department
    sales_dept: Department
    tokens: dict[str, str] = field(default_factory=dict)
    password: str = PASSWORD

    def headers(self, who: str) -> dict[str, str]:
        """Authorization header for 'admin', 'it' or 'sales'."""
        return {"Authorization": f"Bearer {self.tokens[who]}"}

    def bearer(self, user: User, expire_seconds: int = 3600) -> dict[str, str]:
        """Authorization header for an arbitrary user."""
        return {"Authorization": f"Bearer {token_for(user, expire_seconds)}"}

    def flush(self) -> None:
        """Wait for background audit writes before asserting on the audit log."""
        assert self.services.recorder.flush(timeout=5.0)

    def audit(self, **filters) -> list:
        self.flush()
        return self.services.audit_store.list_entries(AuditQuery(limit=1000, **filters)).entries

    def make_user(self, username: str, role: Role = Role.DEPARTMENT_MANAGER, department_id: int | None = None) -> User:
        if role is Role.DEPARTMENT_MANAGER and department_id is None:
            department_id = self.it_dept.id
        return _create_user(self.services, username, role, department_id)


@pytest.fixture(scope="module")
def api_env(tmp_path_factory) -> Generator[ApiEnv, None, None]:
    """Yield an ApiEnv for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan, so tests
    hit real route handlers, the real access gate and the real audit recorder.
    """
    services = make_services(tmp_path_factory.mktemp("api") / "proxyvault.db")

    it_id = services.inventory.create_department(Department(name="IT", description="Information Technology"))
    sales_id = services.inventory.create_department(Department(name="Sales"))
    admin = _create_user(services, "testadmin", Role.SUPER_ADMIN)
    it_manager = _create_user(services, "it_manager", Role.DEPARTMENT_MANAGER, it_id)
    sales_manager = _create_user(services, "sales_manager", Role.DEPARTMENT_MANAGER, sales_id)

    app.router.lifespan_context = _patch_lifespan(services)
    limiter.reset()

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiEnv(
            client=client,
            services=services,
            admin=admin,
            it_manager=it_manager,
            sales_manager=sales_manager,
            it_dept=services.inventory.get_department(it_id),
            sales_dept=services.inventory.get_department(sales_id),
            tokens={"admin": token_for(admin), "it": token_for(it_manager), "sales": token_for(sales_manager)},
        )

    services.recorder.close()
    services.inventory.engine.dispose()


@pytest.fixture
def services(tmp_path) -> Generator[Services, None, None]:
    """Service graph on a private SQLite file, for tests that bypass HTTP."""
    built = make_services(tmp_path / "services.db")
    yield built
    built.recorder.close()
    built.inventory.engine.dispose()
