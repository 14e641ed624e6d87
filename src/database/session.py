"""
Database Session Management

Handles connection pooling, session lifecycle, and database initialization.
Designed for both PostgreSQL (production) and SQLite (local development, tests).
"""

import os
import logging
from contextlib import contextmanager
from typing import Callable, Generator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool, StaticPool

from .models import Base

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]

# =============================================================================
# DATABASE URL CONFIGURATION
# =============================================================================

def get_database_url() -> str:
    """
    Resolve the database URL from the environment.

    DATABASE_URL wins over POSTGRES_URL; without either, a local SQLite
    file named by SQLITE_PATH is used.
    """
    for var in ("DATABASE_URL", "POSTGRES_URL"):
        url = os.getenv(var)
        if url:
            # SQLAlchemy only accepts the postgresql:// scheme
            if url.startswith("postgres://"):
                url = url.replace("postgres://", "postgresql://", 1)
            logger.info(f"Using PostgreSQL database from {var}")
            return url

    sqlite_path = os.getenv("SQLITE_PATH", "github_analytics_dev.db")
    logger.warning(f"No DATABASE_URL found, using SQLite: {sqlite_path}")
    return f"sqlite:///{sqlite_path}"


# =============================================================================
# ENGINE CONFIGURATION
# =============================================================================

def create_db_engine(url: Optional[str] = None) -> Engine:
    """
    Create database engine with appropriate settings.

    PostgreSQL: Connection pooling
    SQLite: Simpler settings, foreign key support; in-memory databases
    share one connection so every session sees the same data
    """
    url = url or get_database_url()
    is_postgres = url.startswith("postgresql://")
    echo = os.getenv("SQL_DEBUG", "false").lower() == "true"

    if is_postgres:
        engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=5,                # Base connections
            max_overflow=10,            # Additional connections under load
            pool_timeout=30,            # Wait for connection
            pool_recycle=1800,          # Recycle connections after 30 min
            pool_pre_ping=True,         # Verify connections before use
            echo=echo,
        )
        logger.info("Created PostgreSQL engine with connection pooling")
    else:
        kwargs = {
            "connect_args": {"check_same_thread": False},  # Allow multi-thread access
            "echo": echo,
        }
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, **kwargs)

        # Enable foreign keys for SQLite
        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        logger.info("Created SQLite engine")

    return engine


# Global engine (lazy initialization)
_engine = None


def get_engine() -> Engine:
    """Get or create the database engine."""
    global _engine
    if _engine is None:
        _engine = create_db_engine()
    return _engine


# =============================================================================
# SESSION MANAGEMENT
# =============================================================================

_session_factory = None


def create_session_factory(engine: Engine) -> SessionFactory:
    # Repositories hand detached rows to services, so keep attributes loaded
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def get_session_factory() -> SessionFactory:
    """Session factory bound to the process-wide engine."""
    global _session_factory
    if _session_factory is None:
        _session_factory = create_session_factory(get_engine())
    return _session_factory


@contextmanager
def session_scope(session_factory: SessionFactory) -> Generator[Session, None, None]:
    """
    Transactional scope over a session from the given factory.

    Commits on success, rolls back on any exception.
    """
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# =============================================================================
# DATABASE INITIALIZATION
# =============================================================================

def init_db(engine: Optional[Engine] = None) -> None:
    """Create the users, activity and analytics snapshot tables if missing."""
    engine = engine or get_engine()
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully")


def check_db_connection(session_factory: Optional[SessionFactory] = None) -> bool:
    """
    Check if the database behind a session factory is reachable.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        with session_scope(session_factory or get_session_factory()) as db:
            db.execute(text("SELECT 1"))
        logger.debug("Database connection verified")
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False
