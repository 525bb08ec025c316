# =======================================================================================
# library_kiosk/database.py - Database Management
# =======================================================================================
import logging
import os
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import QueuePool

from .config import config
from .schema import metadata
from .utils.exceptions import StorageUnavailableError

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Manages database connections and transactions for the local ledger."""

    def __init__(self, url: Optional[str] = None):
        self.url = url or config.DB_URL
        self.is_sqlite = self.url.startswith("sqlite")

        if self.is_sqlite:
            # SQLite serializes writers itself; wait on its lock instead of failing fast
            self.engine: Engine = create_engine(
                self.url,
                connect_args={"check_same_thread": False, "timeout": 15},
                pool_pre_ping=True,
                future=True,
            )
            event.listen(self.engine, "connect", _sqlite_pragmas)
        else:
            self.engine = create_engine(
                self.url,
                poolclass=QueuePool,
                pool_size=config.DB_POOL_SIZE,
                max_overflow=config.DB_MAX_OVERFLOW,
                pool_pre_ping=True,
                isolation_level="READ COMMITTED",
                future=True,
            )

    def init_schema(self):
        """Create tables and indexes if they are missing."""
        if self.is_sqlite:
            database = make_url(self.url).database
            if database and database != ":memory:":
                folder = os.path.dirname(os.path.abspath(database))
                os.makedirs(folder, exist_ok=True)
        try:
            metadata.create_all(self.engine)
        except OperationalError as e:
            raise StorageUnavailableError(f"Cannot initialize ledger database: {e}") from e
        logger.info("Ledger schema ready at %s", self.engine.url.render_as_string(hide_password=True))

    @contextmanager
    def get_connection(self):
        """Get a connection inside one transaction; commits on success, rolls back on error."""
        try:
            with self.engine.begin() as conn:
                yield conn
        except OperationalError as e:
            logger.error("Ledger storage unavailable: %s", e)
            raise StorageUnavailableError(str(e.orig) if e.orig else str(e)) from e

    def fetch_one(self, query: str, params: dict = None):
        """Fetch a single result."""
        with self.get_connection() as conn:
            result = conn.execute(text(query), params or {})
            return result.mappings().first()

    def dispose(self):
        self.engine.dispose()


def _sqlite_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=15000")
    cursor.close()

# Global database instance
db_manager = DatabaseManager()
