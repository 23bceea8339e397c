"""
ProjectionService: realtime Firestore projection for the dashboard.

Denormalized documents the UI subscribes to:
- transcription_sessions/{session_id}   scribe status for the polling view
- dashboard/counters                    intake and referral counters

OPTIONAL: runs in no-op mode if Firestore is disabled or unavailable.
Writes are fire-and-forget so a slow Firestore never delays an API response.
"""

import threading
from datetime import datetime
from typing import Any, Dict, Optional

from isynera.db.firestore import get_firestore_client, firestore_enabled, firestore_available


class ProjectionService:

    def __init__(self):
        self._client = None
        self._enabled = None

    @property
    def enabled(self) -> bool:
        if self._enabled is None:
            self._enabled = firestore_enabled() and firestore_available()
        return self._enabled

    @property
    def client(self):
        if self._client is None:
            self._client = get_firestore_client()
        return self._client

    def _run_async(self, func, *args, **kwargs):
        """Run func in a daemon thread; failures are logged, never raised."""
        def _wrapper():
            try:
                func(*args, **kwargs)
            except Exception as e:
                print(f"[ProjectionService] Async operation failed: {e}")

        thread = threading.Thread(target=_wrapper, daemon=True)
        thread.start()
        return True

    # -------------------------------------------------------------------------
    # Transcription sessions
    # -------------------------------------------------------------------------

    def update_transcription_session(self, session: Dict[str, Any]) -> bool:
        """Project a transcription session dict (TranscriptionSession.to_dict())."""
        if not self.enabled or not self.client:
            return False

        ref = self.client.collection("transcription_sessions").document(session["session_id"])
        data = {
            "session_id": session["session_id"],
            "user_id": session.get("user_id"),
            "patient_id": session.get("patient_id"),
            "status": session.get("status"),
            "has_soap_notes": bool(session.get("soap_notes")),
            "completed_at": session.get("completed_at"),
            "updated_at": datetime.utcnow().isoformat(),
        }

        def _do_update():
            ref.set(data, merge=True)
            print(f"[ProjectionService] Updated transcription_session: {session['session_id']}")

        return self._run_async(_do_update)

    # -------------------------------------------------------------------------
    # Dashboard counters
    # -------------------------------------------------------------------------

    def update_dashboard_counters(self, counters: Dict[str, Any], source: Optional[str] = None) -> bool:
        if not self.enabled or not self.client:
            return False

        ref = self.client.collection("dashboard").document("counters")
        data = {**counters, "updated_at": datetime.utcnow().isoformat()}
        if source:
            data["last_source"] = source

        def _do_update():
            ref.set(data, merge=True)
            print(f"[ProjectionService] Updated dashboard counters ({source or 'unknown'})")

        return self._run_async(_do_update)


# Singleton instance
_projection_service = None


def get_projection_service() -> ProjectionService:
    global _projection_service
    if _projection_service is None:
        _projection_service = ProjectionService()
    return _projection_service
