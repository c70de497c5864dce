"""Import pipeline: parse -> validate -> chunk -> batched commit."""
import logging
import os
import secrets
import time
from functools import partial
from typing import Callable, Iterable, Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from record_transfer.config import Settings
from record_transfer.errors import (
    CreditError,
    InfrastructureError,
    ParseError,
    RecordRejected,
)
from record_transfer.models.import_job import ImportJob
from record_transfer.services.chunker import chunk_records
from record_transfer.services.committer import BatchCommitter
from record_transfer.services.credits import CreditGate
from record_transfer.services.document_store import DocumentStore
from record_transfer.services.job_tracker import ImportJobTracker
from record_transfer.services.parser import parse_records
from record_transfer.services.progress import ProgressChannel
from record_transfer.services.records import ImportableRecord, RawRecord
from record_transfer.services.validator import validate_record

JSON_BYTES_PER_RECORD = 512

logger = logging.getLogger(__name__)


def generate_job_id(prefix: str) -> str:
    """Timestamp plus random suffix, e.g. ``imp-1760860800000-9f2c41aa``."""
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


def estimate_import_units(file_path: str, source_format: str) -> int:
    """
    Cheap record-count estimate used for the pre-flight credit check.

    CSV counts non-blank lines minus the header, JSON divides the file size
    by an average record size. Neither parses the file, so a quoted cell
    spanning several lines counts once per line and the estimate can run
    above the real record count.
    """
    if source_format == "csv":
        with open(file_path, "rb") as f:
            lines = sum(1 for line in f if line.strip())
        return max(1, lines - 1)
    return max(1, os.path.getsize(file_path) // JSON_BYTES_PER_RECORD)


def submit_import(
    db: Session,
    gate: CreditGate,
    settings: Settings,
    *,
    team_id: str,
    user_id: str,
    file_name: str,
    file_size: int,
    source_format: str,
    estimated_units: int,
) -> ImportJob:
    """
    Accept a file for import after the credit check passes.

    Raises:
        CreditError: Before any job record exists
    """
    if not gate.check_credits(team_id, settings.import_credit_type, estimated_units):
        logger.warning(
            f"💳 Import rejected for team {team_id}: {estimated_units} "
            f"{settings.import_credit_type} credits unavailable"
        )
        raise CreditError(team_id, settings.import_credit_type, estimated_units)

    job = ImportJob(
        id=generate_job_id("imp"),
        team_id=team_id,
        source_file_name=file_name,
        source_file_size=file_size,
        source_format=source_format,
        status="processing",
        errors=[],
        submitted_by=user_id,
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    logger.info(f"🆔 Import job {job.id} created for {file_name} ({file_size} bytes)")
    return job


def run_import(
    db: Session,
    job_id: str,
    file_path: str,
    *,
    store: DocumentStore,
    gate: CreditGate,
    channel: ProgressChannel,
    settings: Settings,
    sleep: Callable[[float], None] = time.sleep,
) -> ImportJob:
    """
    Process an accepted import to a terminal state.

    The first pass parses and validates the whole file, so syntax errors
    end the job before any write and rejected records are counted before
    the first chunk commits. The second pass re-reads the file and commits
    valid records chunk by chunk, serially.

    Returns:
        The ImportJob in its terminal state

    Raises:
        InfrastructureError: When the job or store becomes unusable outside
            a chunk commit. The job is marked failed when still possible.
    """
    tracker = ImportJobTracker.load(db, job_id, channel, settings.max_stored_errors)
    job = tracker.job
    validate = partial(
        validate_record,
        id_fields=settings.record_id_fields,
        numeric_fields=settings.numeric_fields,
        max_document_bytes=settings.max_document_bytes,
    )
    committer = BatchCommitter(
        store,
        settings.records_collection,
        timeout=settings.commit_timeout_seconds,
        retry_budget=settings.chunk_retry_budget,
        backoff_seconds=settings.chunk_retry_backoff_seconds,
        sleep=sleep,
    )

    try:
        logger.info(f"🔢 Validating {job.source_format} file for import {job.id}")
        total = 0
        rejections: list[RecordRejected] = []
        with open(file_path, "rb") as f:
            for raw in parse_records(f, job.source_format):
                total += 1
                try:
                    validate(raw)
                except RecordRejected as rejected:
                    rejections.append(rejected)
        tracker.set_total(total)
        tracker.record_rejections(rejections)
        logger.info(f"✅ {total} records found, {len(rejections)} rejected for import {job.id}")

        with open(file_path, "rb") as f:
            valid = _valid_records(parse_records(f, job.source_format), validate)
            for chunk in chunk_records(valid, store.max_batch_size):
                if tracker.cancel_requested():
                    tracker.mark_canceled()
                    return job

                outcome = committer.commit(chunk, job.id, job.submitted_by)
                tracker.record_chunk(outcome)
                logger.info(
                    f"📦 Chunk {chunk.index} {'committed' if outcome.succeeded else 'failed'}: "
                    f"{job.processed_records}/{job.total_records} processed"
                )
                if outcome.succeeded and not _charge_chunk(tracker, gate, settings, len(chunk)):
                    return job

        tracker.mark_completed()
        return job

    except ParseError as e:
        logger.warning(f"❌ Import {job.id} aborted by parse error: {e}")
        tracker.mark_failed(f"Parse error: {e}")
        return job
    except (InfrastructureError, SQLAlchemyError, OSError) as e:
        logger.error(f"💥 Import {job.id} failed: {e}", exc_info=True)
        _fail_quietly(tracker, str(e))
        if isinstance(e, InfrastructureError):
            raise
        raise InfrastructureError(str(e)) from e


def _valid_records(
    raws: Iterable[RawRecord], validate: Callable[[RawRecord], ImportableRecord]
) -> Iterator[ImportableRecord]:
    for raw in raws:
        try:
            yield validate(raw)
        except RecordRejected:
            # Already counted during the first pass
            continue


def _charge_chunk(
    tracker: ImportJobTracker, gate: CreditGate, settings: Settings, units: int
) -> bool:
    """Charge credits for a committed chunk. Returns False when the job must stop."""
    job = tracker.job
    try:
        gate.charge_credits(job.team_id, settings.import_credit_type, units)
    except CreditError as e:
        logger.error(
            f"💳 billing reconciliation: import {job.id} committed {units} records "
            f"without charge: {e.message}"
        )
        tracker.record_error(-1, f"Credit charge rejected: {e.message}")
        tracker.mark_failed("Credit limit reached, remaining records were not imported")
        return False
    except InfrastructureError as e:
        logger.error(
            f"💳 billing reconciliation: import {job.id} could not charge {units} "
            f"{settings.import_credit_type} credits: {e}"
        )
    return True


def _fail_quietly(tracker: ImportJobTracker, message: str) -> Optional[ImportJob]:
    try:
        if not tracker.job.is_terminal:
            tracker.mark_failed(message)
        return tracker.job
    except (InfrastructureError, SQLAlchemyError) as e:
        logger.error(f"Could not mark import {tracker.job.id} as failed: {e}")
        return None
