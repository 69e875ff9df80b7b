"""
Shared pytest fixtures.

The app is exercised against the in-memory FakeRepository, so no
PostgreSQL server is needed. tests/test_postgres.py is the exception and
runs only when DATABASE_URL is set.
"""
import os
import tempfile
from contextlib import asynccontextmanager

# 必須在 import main 之前設定好
os.environ.setdefault("JWT_SECRET", "test-secret-key-at-least-32-characters-long")
os.environ["INIT_DB_ON_STARTUP"] = "false"
os.environ.setdefault("UPLOAD_ROOT", tempfile.mkdtemp(prefix="gig-uploads-"))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from models.user import CallerContext, UserRole  # noqa: E402
from security import create_access_token  # noqa: E402
from tests.fakes import FakeRepository  # noqa: E402


@pytest.fixture
def repo():
    return FakeRepository()


@pytest.fixture
def make_user(repo):
    """Create a user directly in the store; returns (CallerContext, token)."""
    counter = {"n": 0}

    async def _make(role: UserRole, name: str | None = None):
        counter["n"] += 1
        user = await repo.create_user(
            name=name or f"{role.value}-{counter['n']}",
            email=f"{role.value}{counter['n']}@example.com",
            hashed_password="not-used",
            role=role.value,
        )
        return CallerContext(user_id=user["id"], role=role), create_access_token(user["id"])

    return _make


@pytest.fixture
def make_gig(repo):
    async def _make(freelancer: CallerContext, price: int = 500, **extra):
        data = {
            "title": extra.pop("title", "Logo design"),
            "description": extra.pop("description", "A clean vector logo"),
            "category": extra.pop("category", "design"),
            "price": price,
            "delivery_days": extra.pop("delivery_days", 3),
        }
        data.update(extra)
        return await repo.create_gig(freelancer.user_id, data)

    return _make


@pytest.fixture
def client(repo):
    from db import get_repository, get_repository_session
    from main import app

    @asynccontextmanager
    async def session():
        yield repo

    async def override_repository():
        return repo

    async def override_session():
        return session

    app.dependency_overrides[get_repository] = override_repository
    app.dependency_overrides[get_repository_session] = override_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()