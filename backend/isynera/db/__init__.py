from .postgres import get_db_session, init_db, Base
from .firestore import get_firestore_client, firestore_enabled

__all__ = ["get_db_session", "init_db", "Base", "get_firestore_client", "firestore_enabled"]
