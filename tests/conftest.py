"""
Pytest configuration for all tests.

Points the backend at an in-memory SQLite database (recreated per test),
disables Firestore, and provides an app/client plus user and token helpers.
"""

import sys
import os
import tempfile

# Environment must be in place before isynera.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["ENABLE_FIRESTORE"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["OPENAI_API_KEY"] = ""
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["SENDGRID_API_KEY"] = ""
os.environ["AVAILITY_API_KEY"] = ""
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="isynera-uploads-"))

# Add backend directory to Python path
backend_path = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'backend'))
if backend_path not in sys.path:
    sys.path.insert(0, backend_path)

import pytest

from isynera.db.postgres import init_db, drop_db, close_db_session
from isynera.services import (
    auth_service,
    transcription_service,
    llm,
    email_service,
    chart_review,
    rag_assistant,
)
from isynera.agents.clinical_agents import orchestrator


DEFAULT_PASSWORD = "password123"


@pytest.fixture(autouse=True)
def database():
    """Fresh schema for every test; singletons are rebuilt against it."""
    drop_db()
    init_db()
    auth_service._auth_service = None
    transcription_service._transcription_service = None
    orchestrator._orchestrator = None
    llm._llm_client = None
    email_service._email_service = None
    chart_review._chart_review_engine = None
    rag_assistant._rag_assistant = None
    yield
    close_db_session()


@pytest.fixture
def app():
    from server import create_app

    app = create_app()
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user():
    """Create an approved, active user and return its dict."""
    counter = {"n": 0}

    def _make(role="staff", username=None, email=None, password=DEFAULT_PASSWORD, approved=True):
        counter["n"] += 1
        username = username or f"{role}{counter['n']}"
        email = email or f"{username}@example.com"
        service = auth_service.get_auth_service()
        user, error = service.register_user(username=username, email=email, password=password, role=role)
        assert error is None, error
        if approved and not user["is_approved"]:
            user, error = service.approve_user(user["id"], user["id"])
            assert error is None, error
        return user

    return _make


def bearer_for(user, password=DEFAULT_PASSWORD):
    """Log the user in and return Authorization headers."""
    response, error = auth_service.get_auth_service().authenticate(user["email"], password)
    assert error is None, error
    return {"Authorization": f"Bearer {response['access_token']}"}


@pytest.fixture
def auth_headers(make_user):
    """Return Authorization headers for a fresh user with the given role."""

    def _headers(role="staff", **kwargs):
        return bearer_for(make_user(role=role, **kwargs))

    return _headers


@pytest.fixture
def login():
    """Return Authorization headers for an existing user dict."""
    return bearer_for
