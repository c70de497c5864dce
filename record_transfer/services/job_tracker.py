"""
Import job tracking.

The tracker is the single writer of an ImportJob's progress fields. Every
mutation is persisted as one row update and then published as a snapshot
on the progress channel.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from record_transfer.errors import InfrastructureError, JobNotFoundError, JobStateError, RecordRejected
from record_transfer.models.import_job import ImportJob
from record_transfer.schemas.imports import ImportJobResponse
from record_transfer.services.committer import ChunkOutcome
from record_transfer.services.progress import ProgressChannel, import_topic

logger = logging.getLogger(__name__)


class ImportJobTracker:
    """Aggregates per-record and per-chunk outcomes into an ImportJob."""

    def __init__(
        self,
        db: Session,
        job: ImportJob,
        channel: ProgressChannel,
        max_stored_errors: int = 100,
    ) -> None:
        self.db = db
        self.job = job
        self.channel = channel
        self.max_stored_errors = max_stored_errors

    @classmethod
    def load(
        cls, db: Session, job_id: str, channel: ProgressChannel, max_stored_errors: int = 100
    ) -> "ImportJobTracker":
        job = db.query(ImportJob).filter(ImportJob.id == job_id).first()
        if not job:
            raise JobNotFoundError(job_id)
        return cls(db, job, channel, max_stored_errors)

    def set_total(self, total: int) -> None:
        self._ensure_active()
        self.job.total_records = total
        self._persist()

    def record_rejections(self, rejections: Iterable[RecordRejected]) -> None:
        """Count rejected records as failed, one row update for the whole group."""
        self._ensure_active()
        rejected = 0
        entries = []
        for rejection in rejections:
            rejected += 1
            entries.append((rejection.record_index, rejection.reason))
        if not rejected:
            return
        self.job.failed_records += rejected
        self._append_errors(entries)
        self._persist()

    def record_chunk(self, outcome: ChunkOutcome) -> None:
        self._ensure_active()
        size = len(outcome.chunk)
        if outcome.succeeded:
            self.job.successful_records += size
        else:
            self.job.failed_records += size
            self._append_errors([(outcome.chunk.first_index, outcome.error.message)])
        self._persist()

    def record_error(self, record_index: int, message: str) -> None:
        """Store an error entry without touching the record counters."""
        self._ensure_active()
        self._append_errors([(record_index, message)])
        self._persist()

    def mark_completed(self) -> None:
        self._finish("completed")
        logger.info(
            f"🏁 Import {self.job.id} completed: {self.job.successful_records} ok, "
            f"{self.job.failed_records} failed"
        )

    def mark_failed(self, message: Optional[str] = None) -> None:
        if message:
            self._append_errors([(-1, message)])
        self._finish("failed")
        logger.error(f"❌ Import {self.job.id} failed: {message}")

    def mark_canceled(self) -> None:
        self._finish("canceled")
        logger.info(f"🛑 Import {self.job.id} canceled after {self.job.processed_records} records")

    def cancel_requested(self) -> bool:
        """Re-read the cancellation flag written by the cancel endpoint."""
        try:
            requested_at = (
                self.db.query(ImportJob.cancel_requested_at)
                .filter(ImportJob.id == self.job.id)
                .scalar()
            )
        except SQLAlchemyError as e:
            raise InfrastructureError(f"Import job store unavailable: {e}") from e
        return requested_at is not None

    def snapshot(self) -> dict[str, Any]:
        return ImportJobResponse.model_validate(self.job).model_dump(mode="json")

    def _finish(self, status: str) -> None:
        self._ensure_active()
        self.job.status = status
        self.job.completed_at = datetime.now(timezone.utc)
        self._persist()

    def _ensure_active(self) -> None:
        if self.job.is_terminal:
            raise JobStateError(f"Import {self.job.id} is already {self.job.status}")

    def _append_errors(self, entries: list[tuple[int, str]]) -> None:
        stored = list(self.job.errors or [])
        room = max(self.max_stored_errors - len(stored), 0)
        stored.extend({"record_index": i, "message": m} for i, m in entries[:room])
        self.job.errors = stored
        self.job.error_count = (self.job.error_count or 0) + len(entries)

    def _persist(self) -> None:
        job = self.job
        job.processed_records = job.successful_records + job.failed_records
        if job.total_records:
            job.progress = min(100, job.processed_records * 100 // job.total_records)
        elif job.status == "completed":
            job.progress = 100
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise InfrastructureError(f"Failed to persist import job {job.id}: {e}") from e
        self.channel.publish(import_topic(job.id), self.snapshot())
