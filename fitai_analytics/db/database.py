"""Database engine and session scoping for the analytics tables."""

import logging
from typing import Generator, List, Optional
from contextlib import contextmanager
from sqlalchemy import create_engine, event, inspect
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from ..config import config
from .models import Base

logger = logging.getLogger(__name__)


def _enforce_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores FOREIGN KEY clauses unless enabled per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Owns the engine for one analytics database.

    SQLite databases (including ``sqlite:///:memory:`` used by the tests) run
    on a single shared connection with foreign keys enforced, so exercise
    entries can never point at a missing workout session.
    """

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or config.DATABASE_URL

        if self.is_sqlite:
            self.engine = create_engine(
                self.database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
                echo=False,
            )
            event.listen(self.engine, "connect", _enforce_sqlite_foreign_keys)
        else:
            self.engine = create_engine(self.database_url, echo=False, pool_pre_ping=True)

        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    def table_names(self) -> List[str]:
        """Analytics tables present in the database."""
        return sorted(inspect(self.engine).get_table_names())

    def create_tables(self) -> List[str]:
        """Create missing tables and return the names of those created."""
        existing = set(self.table_names())
        Base.metadata.create_all(bind=self.engine)
        created = [name for name in self.table_names() if name not in existing]
        if created:
            logger.info("Created tables: %s", ", ".join(created))
        return created

    def drop_tables(self):
        Base.metadata.drop_all(bind=self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Session scope: commits on success, rolls back on any error."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self):
        self.engine.dispose()
