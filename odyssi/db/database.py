"""Database configuration and session management."""

import os
from pathlib import Path
import logging
from typing import Callable, TypeVar

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session

logger = logging.getLogger(__name__)

# Base class for all models
Base = declarative_base()

# Database configuration
DATABASE_DIR = Path(__file__).parent.parent.parent / "data"
DATABASE_PATH = DATABASE_DIR / "odyssi.db"
DATABASE_URL = os.environ.get("ODYSSI_DATABASE_URL", f"sqlite:///{DATABASE_PATH}")
SQLITE_BUSY_TIMEOUT_SECONDS = 30

T = TypeVar("T")


def create_db_engine(url: str, **engine_kwargs) -> Engine:
    """Create an engine, applying the SQLite connection options we rely on."""
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {
            "check_same_thread": False,  # Needed for SQLite
            "timeout": SQLITE_BUSY_TIMEOUT_SECONDS,
        }
    db_engine = create_engine(url, connect_args=connect_args, echo=False, **engine_kwargs)

    if url.startswith("sqlite"):
        @event.listens_for(db_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return db_engine


engine = create_db_engine(DATABASE_URL)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Session:
    """
    Get a database session.

    Usage in FastAPI endpoints:
        @router.get("/endpoint")
        def endpoint(db: Session = Depends(get_db)):
            # Use db here
            pass

    Yields:
        Database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def run_in_transaction(db: Session, fn: Callable[[Session], T]) -> T:
    """
    Run ``fn`` as one unit of work.

    Commits when ``fn`` returns, rolls back everything it did when it raises.
    The original exception is re-raised after the rollback.
    """
    try:
        result = fn(db)
        db.commit()
        return result
    except Exception:
        db.rollback()
        raise


def ensure_database_dir(bind: Engine) -> None:
    """Create the directory holding a file-backed SQLite database."""
    if bind.url.get_backend_name() == "sqlite" and bind.url.database not in (None, "", ":memory:"):
        Path(bind.url.database).parent.mkdir(parents=True, exist_ok=True)


def init_db(bind: Engine = None):
    """
    Initialize the database.

    Creates all tables if they don't exist.
    Should be called on application startup.
    """
    bind = bind or engine
    ensure_database_dir(bind)

    # Import all models so they're registered with Base
    from odyssi.models import journal, app_config  # noqa: F401

    Base.metadata.create_all(bind=bind)

    if bind.url.get_backend_name() == "sqlite":
        # WAL lets readers continue while a backup or restore is writing
        with bind.connect() as conn:
            conn.execute(text("PRAGMA journal_mode=WAL"))
            conn.execute(text("PRAGMA synchronous=NORMAL"))
            conn.commit()

    logger.info(
        "Database config: pid=%s timeout=%ss url=%s",
        os.getpid(),
        SQLITE_BUSY_TIMEOUT_SECONDS,
        bind.url,
    )
