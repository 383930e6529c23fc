"""Shared fixtures."""

import time

import jwt
import pytest

from auth import security
from datasets import events
from datasets.store import MemoryDatasetStore, configure_store


@pytest.fixture(autouse=True)
def serve_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Pin env-driven settings so tests don't depend on the host environment."""
    monkeypatch.setenv("SERVE_BASE_URL", "http://testserver/serve")
    monkeypatch.setenv("JWT_SECRET", "test-secret")
    monkeypatch.delenv("MAX_UPLOAD_BYTES", raising=False)
    monkeypatch.delenv("ADDRESS_MAX_ATTEMPTS", raising=False)
    monkeypatch.delenv("JWT_ALG", raising=False)


@pytest.fixture(autouse=True)
def clean_events():
    events.clear_subscribers()
    yield
    events.clear_subscribers()


@pytest.fixture
def store() -> MemoryDatasetStore:
    """Fresh in-memory store per test."""
    return MemoryDatasetStore()


@pytest.fixture
def configured_store(store: MemoryDatasetStore):
    configure_store(store)
    yield store
    configure_store(None)


@pytest.fixture
def owner() -> str:
    return "user-1"


@pytest.fixture
def other_owner() -> str:
    return "user-2"


@pytest.fixture
def student_records() -> list:
    return [
        {"dept": "CS", "year": "1"},
        {"dept": "CS", "year": "2"},
        {"dept": "EE", "year": "1"},
    ]


@pytest.fixture
def make_access_token():
    """Mint access tokens the way the account service does."""

    def _make(subject: str, *, email: str | None = None, token_type: str = "access", expires_in: int = 900) -> str:
        issued_at = int(time.time())
        payload = {"sub": subject, "type": token_type, "iat": issued_at, "exp": issued_at + expires_in}
        if email:
            payload["email"] = email
        return jwt.encode(payload, security.jwt_secret(), algorithm=security.jwt_algorithm())

    return _make
