"""
Pytest configuration and fixtures.
"""

import os
import sys
from datetime import timedelta

import httpx
import pytest
from sqlmodel import create_engine

# Add app directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from app.config import get_settings  # noqa: E402
from app.db.session import init_db, set_engine  # noqa: E402
from app.services.credential_store import CredentialStore  # noqa: E402
from app.services.job_store import JobStore  # noqa: E402
from app.services.oauth_client import OAuthClient  # noqa: E402
from app.services.progress_broker import ProgressBroker  # noqa: E402
from app.services.token_manager import TokenLifecycleManager  # noqa: E402

TOKEN_URL = "https://open.tiktokapis.com/v2/oauth/token/"
REDIRECT_URI = "https://api.example.com/social/tiktok/callback"
FRONTEND_URL = "https://app.example.com"


@pytest.fixture(autouse=True)
def settings_env(monkeypatch):
    """Configure a TikTok client and development-mode auth for every test."""
    monkeypatch.setenv("TIKTOK_CLIENT_KEY", "test-client-key")
    monkeypatch.setenv("TIKTOK_CLIENT_SECRET", "test-client-secret")
    monkeypatch.setenv("TIKTOK_TOKEN_URL", TOKEN_URL)
    monkeypatch.setenv("TIKTOK_REDIRECT_URI", REDIRECT_URI)
    monkeypatch.setenv("FRONTEND_URL", FRONTEND_URL)
    monkeypatch.delenv("CLIPSTREAM_API_KEY", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def engine(tmp_path):
    """SQLite file database; store calls reach it from executor threads."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'clipstream.db'}",
        connect_args={"check_same_thread": False},
    )
    init_db(engine)
    set_engine(engine)
    yield engine
    set_engine(None)
    engine.dispose()


@pytest.fixture
def credential_store(engine):
    return CredentialStore(engine)


@pytest.fixture
def job_store(engine):
    return JobStore(engine)


@pytest.fixture
def broker():
    return ProgressBroker(max_pending_events=16)


class FakeTokenEndpoint:
    """Scripted upstream token endpoint recording every request."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.response = httpx.Response(
            200,
            json={
                "access_token": "new-access",
                "refresh_token": "new-refresh",
                "expires_in": 86400,
                "open_id": "open-123",
            },
        )
        self.error: Exception | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.response

    def respond(self, status_code: int = 200, **kwargs) -> None:
        self.response = httpx.Response(status_code, **kwargs)


@pytest.fixture
def token_endpoint():
    return FakeTokenEndpoint()


@pytest.fixture
def token_manager(credential_store, token_endpoint):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(token_endpoint))
    return TokenLifecycleManager(
        store=credential_store,
        oauth_client=OAuthClient(http_client=http_client),
        expiry_margin=timedelta(minutes=5),
        default_lifetime=timedelta(hours=24),
    )
