"""
Firestore access for the dashboard projection.

The projection is optional. The client is built once, on first use, and
checked by reading the dashboard counters document; any failure marks
Firestore unavailable for the life of the process and the projection
becomes a no-op.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from isynera.config import config

logger = logging.getLogger("isynera.firestore")

CHECK_COLLECTION = "dashboard"
CHECK_DOCUMENT = "counters"
CHECK_TIMEOUT_SECONDS = 3.0

_state = {"client": None, "available": None}


def firestore_enabled() -> bool:
    return config.ENABLE_FIRESTORE


def firestore_available() -> bool:
    """Enabled, credentialed and answered the startup read."""
    if not firestore_enabled():
        return False
    if _state["available"] is None:
        get_firestore_client()
    return bool(_state["available"])


def resolve_credentials_path() -> Optional[Path]:
    path = Path(config.GCP_CREDENTIALS_PATH)
    if not path.is_absolute():
        path = Path(__file__).resolve().parents[2] / path
    return path if path.exists() else None


def _build_client(credentials_path: Path):
    from google.cloud import firestore

    os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = str(credentials_path)
    return firestore.Client(project=config.GCP_PROJECT_ID, database=config.get_firestore_database())


def get_firestore_client():
    """The shared client, or None when Firestore is off or unreachable."""
    if not firestore_enabled() or _state["available"] is False:
        return None
    if _state["client"] is not None:
        return _state["client"]

    credentials_path = resolve_credentials_path()
    if credentials_path is None:
        logger.warning("Firestore credentials not found at %s; projection disabled", config.GCP_CREDENTIALS_PATH)
        _state["available"] = False
        return None

    try:
        client = _build_client(credentials_path)
        client.collection(CHECK_COLLECTION).document(CHECK_DOCUMENT).get(timeout=CHECK_TIMEOUT_SECONDS)
    except Exception as e:
        logger.warning("Firestore unavailable, projection disabled: %s", e)
        _state["available"] = False
        return None

    logger.info("Firestore connected (project=%s)", config.GCP_PROJECT_ID)
    _state["client"] = client
    _state["available"] = True
    return client


def reset_firestore_state() -> None:
    _state["client"] = None
    _state["available"] = None
