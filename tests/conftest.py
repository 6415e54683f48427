"""
tests/conftest.py -- Shared test fixtures for CodeStandoff integration tests.

This module provides:
  - FakeProviders: scriptable httpx.MockTransport handler standing in for the
    Google and GitHub token and profile endpoints
  - _make_test_stores(): isolated in-memory DBs for users and questions
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - app_harness: module-scoped TestClient + stores + fake providers
  - client: the harness client with an empty cookie jar for each test

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.

Environment must be set before any core/auth import: DEBUG lets
get_settings() generate SECRET_KEY, BCRYPT_ROUNDS keeps hashing fast, and the
OAuth client ids make both providers "configured".
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: Set env before any auth/core import -- get_settings() is cached.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("ALLOWED_HOSTS", '["*"]')
os.environ.setdefault("OAUTH_RATE_LIMIT", "1000/minute")
os.environ.setdefault("GOOGLE_CLIENT_ID", "google-test-client")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "google-test-secret")
os.environ.setdefault("GITHUB_CLIENT_ID", "github-test-client")
os.environ.setdefault("GITHUB_CLIENT_SECRET", "github-test-secret")

import httpx
import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.oauth import OAuthClient, build_oauth_config
from auth.service import AuthService
from auth.store import UserStore
from core.config import get_settings
from training.store import QuestionStore

# ---------------------------------------------------------------------------
# Fake OAuth providers
# ---------------------------------------------------------------------------


class FakeProviders:
    """Scriptable stand-in for the provider HTTP APIs.

    Tests mutate the attributes (profiles, statuses) before driving a flow and
    inspect `requests` afterwards.
    """

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self.token_status = 200
        self.token_body: dict = {"access_token": "provider-access-token", "token_type": "bearer"}
        self.google_status = 200
        self.google_profile: dict = {
            "id": "g-123",
            "email": "gina@example.com",
            "given_name": "Gina",
            "family_name": "Google",
        }
        self.github_status = 200
        self.github_profile: dict = {"id": 4242, "login": "octocat", "name": "Mona Lisa Octocat", "email": "mona@example.com"}
        self.github_emails_status = 200
        self.github_emails: list = []
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host, path = request.url.host, request.url.path
        if (host, path) in (("oauth2.googleapis.com", "/token"), ("github.com", "/login/oauth/access_token")):
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "bad_verification_code"})
            return httpx.Response(200, json=self.token_body)
        if host == "www.googleapis.com" and path == "/oauth2/v2/userinfo":
            return httpx.Response(self.google_status, json=self.google_profile)
        if host == "api.github.com" and path == "/user":
            return httpx.Response(self.github_status, json=self.github_profile)
        if host == "api.github.com" and path == "/user/emails":
            return httpx.Response(self.github_emails_status, json=self.github_emails)
        return httpx.Response(404, json={"message": "Not Found"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def client(self) -> OAuthClient:
        return OAuthClient(build_oauth_config(get_settings()), transport=self.transport())


@pytest.fixture
def providers() -> FakeProviders:
    return FakeProviders()


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, QuestionStore]:
    """Create isolated named shared-memory SQLite stores.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (e.g. 'graphql', 'oauth').
    """
    db_url = f"sqlite:///file:test_codestandoff_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url), QuestionStore(db_url)


def _patch_lifespan(user_store: UserStore, question_store: QuestionStore, oauth_client: OAuthClient):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.question_store = question_store
        app.state.auth_service = AuthService(user_store)
        app.state.oauth_client = oauth_client
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@dataclass
class AppHarness:
    client: TestClient
    user_store: UserStore
    question_store: QuestionStore
    providers: FakeProviders


@pytest.fixture(scope="module")
def app_harness(request) -> Generator[AppHarness, None, None]:
    """Yield a running TestClient wired to fresh stores and fake providers.

    follow_redirects=False: OAuth tests assert on redirect Location headers
    and on the cookies set by the redirect response itself.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    user_store, question_store = _make_test_stores(suffix)
    fake = FakeProviders()

    app.router.lifespan_context = _patch_lifespan(user_store, question_store, fake.client())

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as test_client:
        yield AppHarness(client=test_client, user_store=user_store, question_store=question_store, providers=fake)

    question_store.close()
    user_store.close()


@pytest.fixture
def client(app_harness: AppHarness) -> TestClient:
    """The module's TestClient with an empty cookie jar and default provider responses."""
    app_harness.client.cookies.clear()
    app_harness.providers.reset()
    return app_harness.client


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    """A private in-memory UserStore for unit tests."""
    store = UserStore("sqlite:///:memory:")
    yield store
    store.close()
