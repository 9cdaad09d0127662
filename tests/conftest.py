"""Pytest configuration and shared fixtures."""

import os

# Keep telemetry quiet and local during tests
os.environ.setdefault("OTEL_TRACES_EXPORTER", "none")
os.environ.setdefault("OTEL_METRICS_EXPORTER", "none")
os.environ.setdefault("LOG_FORMAT", "console")
os.environ.setdefault("INIT_DB", "false")

from datetime import UTC, datetime  # noqa: E402
from unittest.mock import AsyncMock, patch  # noqa: E402

import pytest  # noqa: E402
from fakes import (  # noqa: E402
    FakeBackend,
    InMemoryNoteStore,
    InMemorySessionStore,
    make_note,
    text_chunks,
)
from fastapi.testclient import TestClient  # noqa: E402

from vocalyn.auth import create_access_token  # noqa: E402
from vocalyn.models import ChatSession  # noqa: E402


@pytest.fixture
def sample_notes():
    """Two notes the chat tests ask about."""
    return [
        make_note("n1", "# Sky\nThe sky is blue.", datetime(2025, 3, 14, 9, 0, tzinfo=UTC)),
        make_note("n2", "# Groceries\nBuy milk and eggs.", datetime(2025, 3, 15, 9, 0, tzinfo=UTC)),
    ]


@pytest.fixture
def note_store(sample_notes):
    return InMemoryNoteStore(sample_notes)


@pytest.fixture
def session_store():
    return InMemorySessionStore()


@pytest.fixture
def fake_backend():
    return FakeBackend(chunks=text_chunks("Hello"))


@pytest.fixture
def new_session():
    return ChatSession(note_ids=["n1", "n2"])


@pytest.fixture
def auth_headers():
    """Bearer headers for a test user."""
    return {"Authorization": f"Bearer {create_access_token('user-1')}"}


@pytest.fixture
def api_client(note_store, session_store, fake_backend):
    """FastAPI test client with in-memory stores and a scripted backend."""
    from vocalyn.app import app
    from vocalyn.dependencies import get_generation_backend, get_note_store, get_session_store

    app.dependency_overrides[get_note_store] = lambda: note_store
    app.dependency_overrides[get_session_store] = lambda: session_store
    app.dependency_overrides[get_generation_backend] = lambda: fake_backend

    with (
        patch("vocalyn.app.Database.connect", new=AsyncMock()),
        patch("vocalyn.app.Database.disconnect", new=AsyncMock()),
        patch("vocalyn.app.initialize_observability"),
        patch("vocalyn.app.create_generation_backend", return_value=None),
        TestClient(app) as client,
    ):
        yield client

    app.dependency_overrides.clear()
