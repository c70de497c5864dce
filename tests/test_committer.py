"""Tests for the batch committer."""
import time

from conftest import InterceptingStore
from record_transfer.services.chunker import Chunk
from record_transfer.services.committer import BatchCommitter
from record_transfer.services.records import ImportableRecord


def _chunk(start, count, index=0):
    return Chunk(
        index=index,
        records=[
            ImportableRecord(index=i, record_id=f"r{i}", data={"name": f"R{i}"})
            for i in range(start, start + count)
        ],
    )


def test_commit_stamps_provenance(store):
    """Test every document carries the import id, user and timestamp."""
    committer = BatchCommitter(store, "companies", backoff_seconds=0)
    outcome = committer.commit(_chunk(0, 3), "imp-1", "user-1")

    assert outcome.succeeded
    assert outcome.attempts == 1
    doc = store.get("companies", "r2")
    assert doc["name"] == "R2"
    assert doc["importId"] == "imp-1"
    assert doc["importedBy"] == "user-1"
    assert doc["importedAt"]


def test_transient_failure_is_retried(store):
    """Test a chunk succeeds on the retry after one failure."""
    sleeps = []
    intercepting = InterceptingStore(store, fail_when=lambda writes: intercepting.commit_calls == 1)
    committer = BatchCommitter(
        intercepting, "companies", retry_budget=1, backoff_seconds=0.25, sleep=sleeps.append
    )

    outcome = committer.commit(_chunk(0, 2), "imp-1", "user-1")

    assert outcome.succeeded
    assert outcome.attempts == 2
    assert sleeps == [0.25]
    assert store.count("companies") == 2


def test_exhausted_retries_fail_whole_chunk(store):
    """Test a persistent failure fails the chunk with its record range."""
    intercepting = InterceptingStore(store, fail_when=lambda writes: True)
    committer = BatchCommitter(intercepting, "companies", retry_budget=2, sleep=lambda s: None)

    outcome = committer.commit(_chunk(500, 10, index=1), "imp-1", "user-1")

    assert not outcome.succeeded
    assert outcome.attempts == 3
    assert outcome.error.first_index == 500
    assert outcome.error.last_index == 509
    assert "Chunk 1 (records 500-509)" in outcome.error.message
    assert store.count("companies") == 0


def test_timeout_counts_as_failure(store):
    """Test a timed-out commit is a failure, never a partial success."""

    def time_out(calls, writes):
        raise TimeoutError("commit exceeded 10s")

    intercepting = InterceptingStore(store, before_commit=time_out)
    committer = BatchCommitter(intercepting, "companies", retry_budget=0, sleep=lambda s: None)

    outcome = committer.commit(_chunk(0, 5), "imp-1", "user-1")

    assert not outcome.succeeded
    assert isinstance(outcome.error.cause, TimeoutError)
    assert store.count("companies") == 0


def test_locked_database_gives_up_within_timeout(engine, store):
    """Test a commit blocked by another writer fails after the commit timeout."""
    blocker = engine.raw_connection()
    try:
        blocker.cursor().execute("BEGIN IMMEDIATE")
        committer = BatchCommitter(store, "companies", timeout=0.2, retry_budget=0)

        started = time.monotonic()
        outcome = committer.commit(_chunk(0, 3), "imp-1", "user-1")
        elapsed = time.monotonic() - started
    finally:
        blocker.rollback()
        blocker.close()

    assert not outcome.succeeded
    assert elapsed < 2.0
    assert store.count("companies") == 0


def test_each_retry_is_logged(store, caplog):
    intercepting = InterceptingStore(store, fail_when=lambda writes: True)
    committer = BatchCommitter(intercepting, "companies", retry_budget=2, sleep=lambda s: None)

    with caplog.at_level("WARNING", logger="record_transfer.services.committer"):
        outcome = committer.commit(_chunk(0, 2, index=4), "imp-1", "user-1")

    assert not outcome.succeeded
    retries = [r.getMessage() for r in caplog.records if "commit attempt" in r.getMessage()]
    assert len(retries) == 2
    assert "Chunk 4 commit attempt 1 failed" in retries[0]
    assert "store unavailable" in retries[0]
