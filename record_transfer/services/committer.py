"""Commit one chunk of validated records as a single atomic batch."""
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from tenacity import Retrying, stop_after_attempt, wait_fixed

from record_transfer.errors import CommitError
from record_transfer.services.chunker import Chunk
from record_transfer.services.document_store import DocumentStore, WriteBatch

logger = logging.getLogger(__name__)


@dataclass
class ChunkOutcome:
    """Result of committing a chunk: all records succeeded or all failed."""

    chunk: Chunk
    succeeded: bool
    attempts: int
    error: Optional[CommitError] = None


class BatchCommitter:
    """
    Upserts each chunk keyed by record id and stamps import provenance.

    A failed commit is retried ``retry_budget`` times after a fixed backoff.
    Upserts make the retry safe. A commit that exceeds ``timeout`` counts
    as a failure.
    """

    def __init__(
        self,
        store: DocumentStore,
        collection: str,
        timeout: float = 10.0,
        retry_budget: int = 1,
        backoff_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.collection = collection
        self.timeout = timeout
        self.retry_budget = retry_budget
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

    def build_batch(self, chunk: Chunk, job_id: str, user_id: str) -> WriteBatch:
        imported_at = datetime.now(timezone.utc).isoformat()
        batch = self.store.batch()
        for record in chunk.records:
            batch.set(
                self.collection,
                record.record_id,
                {
                    **record.data,
                    "importId": job_id,
                    "importedAt": imported_at,
                    "importedBy": user_id,
                },
            )
        return batch

    def commit(self, chunk: Chunk, job_id: str, user_id: str) -> ChunkOutcome:
        """
        Commit a chunk, retrying within the budget.

        Args:
            chunk: Validated records
            job_id: Import job id stamped as ``importId``
            user_id: Importing user stamped as ``importedBy``

        Returns:
            ChunkOutcome; never raises for store failures
        """
        retrying = Retrying(
            stop=stop_after_attempt(self.retry_budget + 1),
            wait=wait_fixed(self.backoff_seconds),
            sleep=self._sleep,
            before_sleep=lambda retry_state: logger.warning(
                f"⚠️ Chunk {chunk.index} commit attempt {retry_state.attempt_number} failed "
                f"for job {job_id}: {retry_state.outcome.exception()}"
            ),
            reraise=True,
        )
        attempts = 0
        try:
            for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    self.build_batch(chunk, job_id, user_id).commit(timeout=self.timeout)
        except Exception as e:
            logger.warning(f"❌ Chunk {chunk.index} gave up after {attempts} attempts: {e}")
            error = CommitError(chunk.index, chunk.first_index, chunk.last_index, e)
            return ChunkOutcome(chunk=chunk, succeeded=False, attempts=attempts, error=error)

        logger.debug(f"✅ Chunk {chunk.index} committed ({len(chunk)} records, attempt {attempts})")
        return ChunkOutcome(chunk=chunk, succeeded=True, attempts=attempts)
