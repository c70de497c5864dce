"""Export initiation, background processing and status lookups."""
import csv
import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Iterator, Optional, TextIO

from sqlalchemy.orm import Session

from record_transfer.config import Settings
from record_transfer.errors import CreditError, InfrastructureError, JobNotFoundError, JobStateError
from record_transfer.models.export_job import ExportJob
from record_transfer.schemas.exports import ExportFilters, ExportJobResponse
from record_transfer.services.credits import CreditGate
from record_transfer.services.document_store import Condition, DocumentStore
from record_transfer.services.import_pipeline import generate_job_id
from record_transfer.services.progress import ProgressChannel, export_topic
from record_transfer.services.signing import build_download_url

SUPPORTED_FORMATS = ("csv", "json")

logger = logging.getLogger(__name__)


def build_conditions(filters: ExportFilters) -> list[Condition]:
    """Translate export filters into store conditions."""
    conditions = []
    if filters.name:
        conditions.append(Condition("name", "prefix", filters.name))
    if filters.industries:
        conditions.append(Condition("info.proffIndustries", "contains_any", filters.industries))
    if filters.locations:
        conditions.append(Condition("location.municipality", "in", filters.locations))
    if filters.min_revenue is not None:
        conditions.append(Condition("financials.revenue", ">=", filters.min_revenue))
    if filters.max_revenue is not None:
        conditions.append(Condition("financials.revenue", "<=", filters.max_revenue))
    for where in filters.where:
        conditions.append(Condition(where.path, where.op, where.value))
    return conditions


def get_export_preview(store: DocumentStore, settings: Settings, filters: ExportFilters) -> int:
    """Count the records an export with these filters would contain."""
    return store.count(settings.records_collection, build_conditions(filters))


def normalize_fields(fields: list[str]) -> list[str]:
    """Strip and de-duplicate field paths, keeping their first position."""
    seen = []
    for field in fields:
        path = field.strip()
        if not path or any(not part for part in path.split(".")):
            raise ValueError(f"Invalid field path: {field!r}")
        if path not in seen:
            seen.append(path)
    if not seen:
        raise ValueError("Fields must be a non-empty list")
    return seen


def initiate_export(
    db: Session,
    store: DocumentStore,
    gate: CreditGate,
    settings: Settings,
    *,
    team_id: str,
    user_id: str,
    filters: ExportFilters,
    export_format: str,
    fields: list[str],
) -> ExportJob:
    """
    Create a queued export job after checking credits against the preview count.

    Raises:
        ValueError: Unsupported format, bad field paths or filters
        CreditError: The team cannot afford the estimated export
    """
    if export_format not in SUPPORTED_FORMATS:
        raise ValueError(f"Format must be one of: {', '.join(SUPPORTED_FORMATS)}")
    fields = normalize_fields(fields)
    conditions = build_conditions(filters)

    estimated = store.count(settings.records_collection, conditions)
    if not gate.check_credits(team_id, settings.export_credit_type, estimated):
        raise CreditError(team_id, settings.export_credit_type, estimated)

    job = ExportJob(
        id=generate_job_id("exp"),
        team_id=team_id,
        requested_by=user_id,
        status="queued",
        progress=0,
        format=export_format,
        fields=fields,
        filters=filters.model_dump(mode="json", by_alias=True, exclude_defaults=True),
        total_records=estimated,
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    logger.info(f"📤 Export {job.id} queued: ~{estimated} records as {export_format}")
    return job


def get_export_status(db: Session, export_id: str, team_id: str) -> ExportJob:
    """Return the export if it belongs to the caller's team."""
    job = db.query(ExportJob).filter(ExportJob.id == export_id).first()
    if not job or job.team_id != team_id:
        raise JobNotFoundError(export_id)
    return job


def project_fields(data: dict[str, Any], fields: list[str]) -> dict[str, Any]:
    """Keep only the requested dotted paths, preserving nesting."""
    projected: dict[str, Any] = {}
    for field in fields:
        found, value = _lookup(data, field)
        if not found:
            continue
        *parents, leaf = field.split(".")
        node = projected
        for part in parents:
            node = node.setdefault(part, {})
        node[leaf] = value
    return projected


def _lookup(data: dict[str, Any], path: str) -> tuple[bool, Any]:
    node: Any = data
    for part in path.split("."):
        if not isinstance(node, dict) or part not in node:
            return False, None
        node = node[part]
    return True, node


class CsvArtifactWriter:
    """Writes projected records as CSV, one column per dotted field path."""

    def __init__(self, out: TextIO, fields: list[str]) -> None:
        self._fields = fields
        self._writer = csv.writer(out)
        self._writer.writerow(fields)

    def write(self, record: dict[str, Any]) -> None:
        self._writer.writerow([_csv_value(_lookup(record, f)[1]) for f in self._fields])

    def close(self) -> None:
        pass


class JsonArtifactWriter:
    """Streams projected records as a JSON array without buffering them."""

    def __init__(self, out: TextIO) -> None:
        self._out = out
        self._first = True
        out.write("[")

    def write(self, record: dict[str, Any]) -> None:
        self._out.write("\n" if self._first else ",\n")
        self._out.write(json.dumps(record, ensure_ascii=False, default=str))
        self._first = False

    def close(self) -> None:
        self._out.write("]\n" if self._first else "\n]\n")


def _csv_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return value


def iter_pages(
    store: DocumentStore, collection: str, conditions: list[Condition], page_size: int
) -> Iterator[list[tuple[str, dict[str, Any]]]]:
    """Keyset-paginate matching documents ordered by id."""
    last_id: Optional[str] = None
    while True:
        page = store.query(collection, conditions, limit=page_size, start_after=last_id)
        if not page:
            return
        yield page
        if len(page) < page_size:
            return
        last_id = page[-1][0]


def run_export(
    db: Session,
    export_id: str,
    *,
    store: DocumentStore,
    gate: CreditGate,
    channel: ProgressChannel,
    settings: Settings,
) -> ExportJob:
    """
    Stream matching records into an artifact and complete the export.

    Any error, including the task time limit, ends the job as ``failed``
    and is re-raised.
    """
    job = db.query(ExportJob).filter(ExportJob.id == export_id).first()
    if not job:
        raise JobNotFoundError(export_id)
    if job.status != "queued":
        raise JobStateError(f"Export {export_id} is already {job.status}")

    job.status = "processing"
    _persist(db, job, channel)
    logger.info(f"⚙️ Processing export {job.id}")

    artifact_dir = os.path.join(settings.export_dir, job.team_id)
    artifact_path = os.path.join(artifact_dir, f"{job.id}.{job.format}")
    try:
        filters = ExportFilters.model_validate(job.filters)
        conditions = build_conditions(filters)
        total = store.count(settings.records_collection, conditions)
        job.total_records = total
        _persist(db, job, channel)

        os.makedirs(artifact_dir, exist_ok=True)
        written = 0
        with open(artifact_path, "w", newline="", encoding="utf-8") as out:
            if job.format == "csv":
                writer = CsvArtifactWriter(out, job.fields)
            else:
                writer = JsonArtifactWriter(out)
            for page in iter_pages(
                store, settings.records_collection, conditions, settings.export_page_size
            ):
                for _, data in page:
                    writer.write(project_fields(data, job.fields))
                written += len(page)
                job.progress = min(99, written * 100 // max(total, written))
                _persist(db, job, channel)
            writer.close()

        job.total_records = written
        job.artifact_path = artifact_path
        job.download_url = build_download_url(
            settings.public_base_url,
            job.id,
            settings.signing_secret,
            settings.download_url_ttl_seconds,
        )
        job.status = "completed"
        job.progress = 100
        job.completed_at = datetime.now(timezone.utc)
        _persist(db, job, channel)
        logger.info(f"✅ Export {job.id} completed: {written} records")

    except Exception as e:
        logger.error(f"💥 Export {export_id} failed: {e}", exc_info=True)
        db.rollback()
        job.status = "failed"
        job.error = str(e) or e.__class__.__name__
        job.download_url = None
        job.completed_at = datetime.now(timezone.utc)
        _persist(db, job, channel)
        if os.path.exists(artifact_path):
            os.remove(artifact_path)
        raise

    try:
        gate.charge_credits(job.team_id, settings.export_credit_type, written)
    except (CreditError, InfrastructureError) as e:
        logger.error(
            f"💳 billing reconciliation: export {job.id} delivered {written} records "
            f"without charge: {e}"
        )
    return job


def _persist(db: Session, job: ExportJob, channel: ProgressChannel) -> None:
    db.commit()
    channel.publish(
        export_topic(job.id), ExportJobResponse.model_validate(job).model_dump(mode="json")
    )
