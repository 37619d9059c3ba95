"""Shared fixtures: an in-memory database, its record store and seed helpers."""

from datetime import datetime

import pytest

from fitai_analytics.db import Database, RecordStore, SqlRecordStore
from fitai_analytics.exceptions import StoreUnavailable

# Wednesday, mid-month, mid-quarter
NOW = datetime(2024, 5, 15, 12, 0)
USER = "user-1"


class FailingStore(RecordStore):
    """Wraps a store and fails reads of chosen sources (and optionally writes)."""

    def __init__(self, inner: RecordStore, failing_sources=(), fail_writes=False, error=StoreUnavailable):
        self.inner = inner
        self.failing_sources = set(failing_sources)
        self.fail_writes = fail_writes
        self.error = error
        self.upserts = 0

    def _check(self, source):
        if source in self.failing_sources:
            raise self.error(f"simulated outage for {source}")

    def fetch_events(self, user_id, source, start, end):
        self._check(source)
        return self.inner.fetch_events(user_id, source, start, end)

    def latest(self, user_id, source, n):
        self._check(source)
        return self.inner.latest(user_id, source, n)

    def upsert(self, key, record):
        if self.fail_writes:
            raise StoreUnavailable("simulated write failure", source=key.source)
        self.upserts += 1
        return self.inner.upsert(key, record)


@pytest.fixture
def db():
    database = Database("sqlite:///:memory:")
    database.create_tables()
    yield database
    database.close()


@pytest.fixture
def store(db):
    return SqlRecordStore(db)


@pytest.fixture
def add_rows(db):
    """Insert model instances in one transaction."""
    def _add(*rows):
        with db.get_session() as session:
            session.add_all(rows)
    return _add
