"""Pytest configuration and fixtures."""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import record_transfer.models  # noqa: F401 - Import to register models
from record_transfer.config import Settings
from record_transfer.database import Base
from record_transfer.services.credits import SqlCreditGate, provision_credits
from record_transfer.services.document_store import SqlDocumentStore, WriteBatch

TEAM_ID = "team-1"
USER_ID = "user-1"


class RecordingChannel:
    """Progress channel that keeps every published snapshot."""

    def __init__(self):
        self.events = []

    def publish(self, topic, event):
        self.events.append((topic, event))

    def snapshots(self, topic):
        return [event for t, event in self.events if t == topic]


class InterceptingStore:
    """Wraps a real store and lets a test fail or observe batch commits."""

    def __init__(self, inner, fail_when=None, before_commit=None):
        self.inner = inner
        self.fail_when = fail_when
        self.before_commit = before_commit
        self.committed_writes = []
        self.commit_calls = 0

    @property
    def max_batch_size(self):
        return self.inner.max_batch_size

    def batch(self):
        return WriteBatch(self)

    def commit_writes(self, writes, timeout):
        self.commit_calls += 1
        if self.before_commit:
            self.before_commit(self.commit_calls, writes)
        if self.fail_when and self.fail_when(writes):
            raise ConnectionError("store unavailable")
        self.inner.commit_writes(writes, timeout)
        self.committed_writes.extend(writes)

    def get(self, collection, doc_id):
        return self.inner.get(collection, doc_id)

    def query(self, collection, conditions=(), limit=None, start_after=None):
        return self.inner.query(collection, conditions, limit=limit, start_after=start_after)

    def count(self, collection, conditions=()):
        return self.inner.count(collection, conditions)


@pytest.fixture
def engine(tmp_path):
    """Create a throwaway SQLite database for each test."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        upload_dir=str(tmp_path / "uploads"),
        export_dir=str(tmp_path / "exports"),
        chunk_retry_backoff_seconds=0,
        signing_secret="test-secret",
        public_base_url="http://testserver",
    )


@pytest.fixture
def store(session_factory, settings):
    return SqlDocumentStore(session_factory, max_batch_size=settings.max_batch_size)


@pytest.fixture
def gate(session_factory):
    return SqlCreditGate(session_factory)


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def funded_team(db):
    """A team with plenty of import and export credits."""
    provision_credits(db, TEAM_ID, "prospecting", 100_000)
    provision_credits(db, TEAM_ID, "leads", 100_000)
    return TEAM_ID


def write_csv(path, count, missing_ids=(), start=0):
    """Write ``count`` company rows; indexes in ``missing_ids`` get no id."""
    lines = ["id,name,location.municipality,financials.revenue"]
    for i in range(start, start + count):
        record_id = "" if i in missing_ids else f"rec-{i:05d}"
        lines.append(f"{record_id},Company {i},Oslo,{i * 10}")
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path
