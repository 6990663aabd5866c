"""
tests/conftest.py -- Shared test fixtures for Storekeep.

This module provides:
  - CapturingNotifier: records every (user, code) pair instead of sending it
  - settings_factory: Settings with fixed test secrets and a fresh DB URL
  - make_services: builds a fully wired Services bundle on an isolated DB
  - services: a default Services bundle, one per test
  - client: TestClient over the real app with the services wired in
  - create_user / auth_header: factories for seeding accounts and bearer headers
  - count_sessions: raw row count of a user's sessions

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process. Each
Services bundle gets a fresh uuid-named database.

DEBUG and UPLOAD_DIR must be set before api.main / asgi are imported: the
app module reads get_settings() at import time for its middleware and the
static mount.
"""

from __future__ import annotations

import os
import tempfile
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager
from typing import Any

# CRITICAL: Set these before any api/asgi import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="storekeep-test-uploads-"))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import text

from api.main import Services, attach_services, build_services
from asgi import app
from auth.models import Role, User, UserStatus
from auth.passwords import hash_password
from core.config import Settings

TEST_PASSWORD = "secret1"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class CapturingNotifier:
    """Notifier double that keeps every dispatched code in memory."""

    def __init__(self) -> None:
        self.sent: list[tuple[User, str]] = []

    def send_code(self, user: User, code: str) -> None:
        self.sent.append((user, code))

    def last_code_for(self, email: str) -> str:
        for user, code in reversed(self.sent):
            if user.email == email:
                return code
        raise AssertionError(f"No code was sent to {email}")


def _make_settings(**overrides: Any) -> Settings:
    """Settings for an isolated in-memory database with fixed test secrets."""
    values: dict[str, Any] = {
        "debug": True,
        "database_url": f"sqlite:///file:test_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true",
        "access_secret_key": "a" * 40,
        "refresh_secret_key": "r" * 40,
        "otp_secret": "o" * 40,
        "upload_dir": os.environ["UPLOAD_DIR"],
    }
    values.update(overrides)
    return Settings(**values)


def _patch_lifespan(services: Services):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-built test services into app.state so TestClient routes see the
    isolated test DB rather than the production database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        attach_services(app, services)
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings_factory() -> Callable[..., Settings]:
    """Factory: settings_factory(**overrides) -> Settings on a fresh in-memory DB."""
    return _make_settings


@pytest.fixture
def make_services() -> Generator[Callable[..., Services], None, None]:
    """Factory: make_services(**settings_overrides) -> Services with a CapturingNotifier."""
    built: list[Services] = []

    def _make(**overrides: Any) -> Services:
        services = build_services(_make_settings(**overrides), notifier=CapturingNotifier())
        built.append(services)
        return services

    yield _make

    for services in built:
        services.close()


@pytest.fixture
def services(make_services) -> Services:
    return make_services()


@pytest.fixture
def client(services: Services) -> Generator[TestClient, None, None]:
    """TestClient over the real app (routes, middleware, handlers) with test services."""
    app.router.lifespan_context = _patch_lifespan(services)
    with TestClient(app, raise_server_exceptions=True) as test_client:
        yield test_client


@pytest.fixture
def create_user(services: Services) -> Callable[..., User]:
    """Factory: insert a user directly through the store and return it."""

    def _create(
        email: str = "user@example.com",
        *,
        role: Role = Role.USER,
        status: UserStatus = UserStatus.ACTIVE,
        password: str = TEST_PASSWORD,
        full_name: str = "Test User",
    ) -> User:
        user_id = services.user_store.create_user(
            User(
                email=email,
                full_name=full_name,
                year_of_birth=1990,
                phone="+15550001111",
                hashed_password=hash_password(password),
                role=role,
                status=status,
            )
        )
        return services.user_store.get_by_id(user_id)

    return _create


@pytest.fixture
def auth_header(services: Services) -> Callable[[User], dict[str, str]]:
    """Factory: bearer Authorization header carrying a fresh access token for `user`."""

    def _header(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {services.tokens.issue_access(user.id, user.role)}"}

    return _header


@pytest.fixture
def count_sessions(services: Services) -> Callable[[int], int]:
    """Factory: count_sessions(user_id) -> number of stored session rows for that user."""

    def _count(user_id: int) -> int:
        with services.user_store.engine.connect() as conn:
            return conn.execute(
                text("SELECT COUNT(*) FROM sessions WHERE user_id = :user_id"), {"user_id": user_id}
            ).scalar_one()

    return _count
