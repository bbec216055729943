"""Database infrastructure for Planet Core."""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from planet_core.config import get_settings
from planet_core.domain import text as text_utils


def install_sqlite_functions(engine: Engine) -> None:
    """Register the search functions used by non-PostgreSQL dialects.

    Mirrors the tsvector and pg_trgm behaviour closely enough for local
    development and the test suite.
    """

    @event.listens_for(engine, "connect")
    def register_functions(dbapi_conn, connection_record):
        dbapi_conn.create_function(
            "planet_fts_match", 2,
            lambda doc, q: int(text_utils.fulltext_match(doc, q)),
            deterministic=True,
        )
        dbapi_conn.create_function(
            "planet_fts_rank", 2, text_utils.fulltext_rank, deterministic=True
        )
        dbapi_conn.create_function(
            "planet_trgm_match", 4,
            lambda doc, q, threshold, pattern: int(
                text_utils.matches_like(doc, pattern)
                or text_utils.word_similarity(q, doc) >= threshold
            ),
            deterministic=True,
        )
        dbapi_conn.create_function(
            "planet_word_similarity", 2, text_utils.word_similarity, deterministic=True
        )


def get_sync_engine() -> Engine:
    """Get synchronous database engine."""
    settings = get_settings()
    if settings.database_url.startswith("sqlite"):
        engine = create_engine(
            settings.database_url,
            connect_args={"check_same_thread": False},
            echo=False,
        )
        install_sqlite_functions(engine)
        return engine

    return create_engine(
        settings.database_url,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=False,
    )


# Session factories
_sync_engine = None
_sync_session_factory = None


def get_sync_session_factory() -> sessionmaker[Session]:
    """Get synchronous session factory (singleton)."""
    global _sync_engine, _sync_session_factory
    if _sync_session_factory is None:
        _sync_engine = get_sync_engine()
        _sync_session_factory = sessionmaker(
            bind=_sync_engine,
            autocommit=False,
            autoflush=False,
        )
    return _sync_session_factory


def get_db_session():
    """Get a synchronous database session (for use in sync contexts)."""
    session_factory = get_sync_session_factory()
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
