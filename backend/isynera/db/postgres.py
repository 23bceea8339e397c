"""
PostgreSQL connection via SQLAlchemy with psycopg3.

This is the system of record for every clinical and administrative entity.
An in-memory sqlite URL is accepted so the test suite can run without a server.
"""

from sqlalchemy import create_engine, event, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import sessionmaker, scoped_session, declarative_base
from sqlalchemy.pool import StaticPool

from isynera.config import config

# SQLAlchemy base for model declarations
Base = declarative_base()

# JSONB on PostgreSQL, plain JSON everywhere else
JSONType = JSON().with_variant(JSONB(), "postgresql")

# Engine and session factory (initialized lazily)
_engine = None
_session_factory = None


def get_engine():
    """Get or create the SQLAlchemy engine."""
    global _engine
    if _engine is None:
        db_url = config.get_database_url()

        if db_url.startswith("sqlite"):
            _engine = create_engine(
                db_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
            return _engine

        # Use psycopg3 dialect
        db_url = db_url.replace("postgresql://", "postgresql+psycopg://")
        _engine = create_engine(
            db_url,
            echo=config.DEBUG,  # Log SQL in debug mode
            pool_pre_ping=True,
            pool_recycle=300,
            pool_reset_on_return="rollback",
        )

        @event.listens_for(_engine, "checkout")
        def checkout_listener(dbapi_conn, connection_record, connection_proxy):
            """Ensure connection is in clean state when checked out."""
            try:
                cursor = dbapi_conn.cursor()
                cursor.execute("ROLLBACK")
                cursor.close()
            except Exception:
                pass  # connection already clean

    return _engine


def get_db_session():
    """Get a scoped database session.

    Returns the thread-local session from the scoped session factory.
    The session is cleaned up at the end of each request via close_db_session().
    """
    global _session_factory
    if _session_factory is None:
        _session_factory = scoped_session(
            sessionmaker(bind=get_engine(), autoflush=False, expire_on_commit=False)
        )

    return _session_factory()


def init_db():
    """Initialize database tables (for development/testing)."""
    # Import models so they register with Base.metadata
    from isynera import models  # noqa: F401

    Base.metadata.create_all(bind=get_engine())


def drop_db():
    """Drop every table. Used by the test suite between tests."""
    from isynera import models  # noqa: F401

    close_db_session()
    Base.metadata.drop_all(bind=get_engine())


def close_db_session(exception=None):
    """Remove the current session (call at end of request).

    Always rollback to ensure clean state for next request,
    then remove the session from the registry.
    """
    if _session_factory is not None:
        try:
            _session_factory.rollback()
        except Exception:
            pass
        finally:
            try:
                _session_factory.remove()
            except Exception:
                pass


def rollback_session():
    """Explicitly rollback the current session.

    Called at the start of each request in case a previous request
    left the thread-local session dirty.
    """
    if _session_factory is not None:
        try:
            session = _session_factory()
            if session.is_active:
                session.rollback()
        except Exception:
            try:
                _session_factory.remove()
            except Exception:
                pass


# Alias for convenience
db = Base
