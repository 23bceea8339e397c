"""
Unit tests for the Firestore client wrapper (client construction mocked).
"""

import pytest
from unittest.mock import MagicMock, patch

from isynera.config import config
from isynera.db import firestore


@pytest.fixture(autouse=True)
def fresh_state(monkeypatch, tmp_path):
    credentials = tmp_path / "gcp.json"
    credentials.write_text("{}")
    monkeypatch.setattr(config, "ENABLE_FIRESTORE", True)
    monkeypatch.setattr(config, "GCP_CREDENTIALS_PATH", str(credentials))
    firestore.reset_firestore_state()
    yield
    firestore.reset_firestore_state()


def test_disabled_returns_no_client(monkeypatch):
    monkeypatch.setattr(config, "ENABLE_FIRESTORE", False)

    assert firestore.get_firestore_client() is None
    assert firestore.firestore_available() is False


def test_missing_credentials_disable_projection(monkeypatch, tmp_path):
    monkeypatch.setattr(config, "GCP_CREDENTIALS_PATH", str(tmp_path / "missing.json"))

    with patch.object(firestore, "_build_client") as build:
        assert firestore.get_firestore_client() is None
        build.assert_not_called()

    assert firestore.firestore_available() is False


def test_client_is_checked_against_counters_document():
    client = MagicMock()

    with patch.object(firestore, "_build_client", return_value=client) as build:
        assert firestore.get_firestore_client() is client
        assert firestore.get_firestore_client() is client

    build.assert_called_once()
    client.collection.assert_called_once_with("dashboard")
    client.collection.return_value.document.assert_called_once_with("counters")
    client.collection.return_value.document.return_value.get.assert_called_once_with(timeout=3.0)
    assert firestore.firestore_available() is True


def test_unreachable_firestore_is_not_retried():
    client = MagicMock()
    client.collection.return_value.document.return_value.get.side_effect = RuntimeError("deadline exceeded")

    with patch.object(firestore, "_build_client", return_value=client) as build:
        assert firestore.get_firestore_client() is None
        assert firestore.get_firestore_client() is None

    build.assert_called_once()
    assert firestore.firestore_available() is False
