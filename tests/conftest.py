"""
tests/conftest.py -- Shared test fixtures for Bookshelf integration tests.

This module provides:
  - make_test_stores(): isolated in-memory DBs for users + catalogue
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient plus seeded admin / editor / plain-user principals

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

Environment variables must be set before any app import: get_settings() is
cached on first use and api/main.py reads it at import time.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from unittest.mock import MagicMock

# CRITICAL: set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-google-client")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-google-secret")
os.environ.setdefault("ADMIN_EMAILS", '["first.admin@example.com"]')
os.environ.setdefault("POST_LOGON_URL", "/books")

import pytest
from fastapi.testclient import TestClient

from api.main import app, wire_components
from auth.models import Role, User
from auth.store import UserStore
from catalog.store import BookStore
from core.config import get_settings

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_test_stores(db_suffix: str) -> tuple[UserStore, BookStore]:
    """Create isolated named shared-memory SQLite stores.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    users_url = f"sqlite:///file:test_users_{db_suffix}?mode=memory&cache=shared&uri=true"
    books_url = f"sqlite:///file:test_books_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=users_url), BookStore(db_url=books_url)


def _patch_lifespan(user_store: UserStore, book_store: BookStore):
    """Return a lifespan that wires the given stores and a mocked OAuth registry."""

    @asynccontextmanager
    async def test_lifespan(app):
        wire_components(app, get_settings(), user_store, book_store)
        app.state.oauth = MagicMock()
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Principals
# ---------------------------------------------------------------------------


@dataclass
class Principal:
    user: User
    token: str

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


@dataclass
class ApiHarness:
    client: TestClient
    user_store: UserStore
    book_store: BookStore
    admin: Principal
    editor: Principal
    reader: Principal

    def add_user(self, full_name: str, roles: set[Role], email: str = "") -> Principal:
        """Create a user directly in the store and issue a token for it."""
        user_id = self.user_store.create_user(
            User(
                full_name=full_name,
                auth_provider="google",
                auth_id=f"sub-{full_name.lower().replace(' ', '-')}",
                email=email or f"{full_name.lower().replace(' ', '.')}@example.com",
                roles=roles,
            )
        )
        user = self.user_store.get_by_id(user_id)
        return Principal(user=user, token=self.client.app.state.tokens.issue(user))


@pytest.fixture(scope="module")
def api_client() -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness with admin, editor and plain-user principals.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers but use isolated in-memory stores. Each test
    module gets its own databases.
    """
    suffix = os.urandom(4).hex()
    user_store, book_store = make_test_stores(suffix)
    app.router.lifespan_context = _patch_lifespan(user_store, book_store)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        harness = ApiHarness(
            client=client,
            user_store=user_store,
            book_store=book_store,
            admin=None,
            editor=None,
            reader=None,
        )
        harness.admin = harness.add_user("Ann Admin", {Role.USER, Role.ADMIN})
        harness.editor = harness.add_user("Ed Editor", {Role.USER, Role.EDITOR})
        harness.reader = harness.add_user("Rita Reader", {Role.USER})
        yield harness

    user_store.close()
    book_store.close()
