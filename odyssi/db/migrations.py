"""
Database migration management for Odyssi.

Fresh databases get the current schema directly and are stamped at head;
existing ones are upgraded with Alembic.
"""

import logging
from pathlib import Path
from typing import Optional

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from odyssi.db.database import Base, create_db_engine

logger = logging.getLogger(__name__)

DEFAULT_MIGRATIONS_DIR = Path(__file__).parent.parent.parent / "alembic"


class MigrationManager:
    """Bring a database to the latest schema revision."""

    def __init__(self, db_url: str, migrations_dir: Optional[Path] = None, engine: Optional[Engine] = None):
        """
        Args:
            db_url: SQLAlchemy database URL (e.g., "sqlite:///data/odyssi.db")
            migrations_dir: Path to migrations directory (defaults to alembic/)
            engine: Engine to inspect; created from ``db_url`` when omitted
        """
        self.db_url = db_url
        self.engine = engine or create_db_engine(db_url)
        self.migrations_dir = Path(migrations_dir or DEFAULT_MIGRATIONS_DIR)

        self.alembic_cfg = Config()
        self.alembic_cfg.set_main_option("script_location", str(self.migrations_dir))
        self.alembic_cfg.set_main_option("sqlalchemy.url", db_url)
        self.alembic_cfg.attributes["configure_logger"] = False  # Use our logger

    def is_fresh_database(self) -> bool:
        tables = inspect(self.engine).get_table_names()
        if not tables:
            logger.info("Fresh database detected - no tables exist")
            return True
        logger.info(f"Existing database detected - {len(tables)} tables found")
        return False

    def get_current_revision(self) -> Optional[str]:
        try:
            with self.engine.connect() as connection:
                return MigrationContext.configure(connection).get_current_revision()
        except SQLAlchemyError as e:
            logger.warning(f"Could not determine current revision: {e}")
            return None

    def get_head_revision(self) -> str:
        return ScriptDirectory.from_config(self.alembic_cfg).get_current_head()

    def initialize_fresh_database(self):
        """Create every table from the models and stamp the database at head."""
        from odyssi.models import journal, app_config  # noqa: F401

        logger.info("Initializing fresh database with latest schema...")
        Base.metadata.create_all(self.engine)
        command.stamp(self.alembic_cfg, "head")
        logger.info("Database stamped - ready to use")

    def apply_migrations(self):
        current = self.get_current_revision()
        head = self.get_head_revision()
        if current == head:
            logger.info("Database is up to date - no pending migrations")
            return

        logger.info(f"Applying pending migrations: {current} -> {head}")
        try:
            command.upgrade(self.alembic_cfg, "head")
        except SQLAlchemyError as e:
            logger.error(f"Migration failed: {e}", exc_info=True)
            raise RuntimeError(f"Failed to apply migrations: {e}") from e
        logger.info("All migrations applied successfully")

    def ensure_database_ready(self):
        """Main entry point - call this on application startup."""
        if self.is_fresh_database():
            self.initialize_fresh_database()
        else:
            self.apply_migrations()


def ensure_database_ready(db_url: str, engine: Optional[Engine] = None):
    """
    Ensure database is ready for use (call this on startup).

    Example:
        ensure_database_ready("sqlite:///data/odyssi.db")
    """
    MigrationManager(db_url, engine=engine).ensure_database_ready()
