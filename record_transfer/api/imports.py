"""Record import API endpoints."""
import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session

from record_transfer.api.streaming import sse_response
from record_transfer.config import get_settings
from record_transfer.database import SessionLocal, get_db
from record_transfer.dependencies import Caller, get_caller, get_credit_gate
from record_transfer.errors import CreditError
from record_transfer.models.import_job import IMPORT_TERMINAL_STATUSES, ImportJob
from record_transfer.schemas.imports import ImportJobResponse, ImportSubmitResponse
from record_transfer.services.credits import CreditGate
from record_transfer.services.import_pipeline import estimate_import_units, submit_import
from record_transfer.services.parser import SUPPORTED_FORMATS, detect_format
from record_transfer.services.progress import import_topic
from record_transfer.tasks.import_tasks import process_import

router = APIRouter(prefix="/api/imports", tags=["imports"])

settings = get_settings()
logger = logging.getLogger(__name__)

UPLOAD_CHUNK_BYTES = 8192


def _get_team_job(db: Session, job_id: str, caller: Caller) -> ImportJob:
    job = db.query(ImportJob).filter(ImportJob.id == job_id).first()
    if not job or job.team_id != caller.team_id:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.post("", response_model=ImportSubmitResponse, status_code=202)
async def submit_import_file(
    file: UploadFile = File(...),
    source_format: Optional[str] = Form(None, alias="format"),
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
    gate: CreditGate = Depends(get_credit_gate),
):
    """
    Accept a CSV or JSON file and start background processing.

    1. Streams the upload to staging storage (max size enforced)
    2. Checks the team's import credits against an estimate (412 if short)
    3. Creates the import job and queues the Celery task
    """
    logger.info(f"📁 Import upload: filename={file.filename}, team={caller.team_id}")

    fmt = (source_format or detect_format(file.filename or "") or "").lower()
    if fmt not in SUPPORTED_FORMATS:
        raise HTTPException(status_code=400, detail="Only CSV and JSON files are allowed")

    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    staged_path = upload_dir / f"{uuid.uuid4()}.{fmt}"

    file_size = 0
    try:
        with open(staged_path, "wb") as buffer:
            content = await file.read(UPLOAD_CHUNK_BYTES)
            while content:
                file_size += len(content)
                if file_size > settings.max_upload_bytes:
                    raise HTTPException(
                        status_code=413,
                        detail=f"File too large (max {settings.max_upload_bytes // (1024 * 1024)}MB)",
                    )
                buffer.write(content)
                content = await file.read(UPLOAD_CHUNK_BYTES)
        logger.info(f"✅ Upload staged: {file_size} bytes at {staged_path}")

        job = submit_import(
            db,
            gate,
            settings,
            team_id=caller.team_id,
            user_id=caller.user_id,
            file_name=file.filename or staged_path.name,
            file_size=file_size,
            source_format=fmt,
            estimated_units=estimate_import_units(str(staged_path), fmt),
        )
    except CreditError as e:
        staged_path.unlink(missing_ok=True)
        raise HTTPException(status_code=412, detail=e.message)
    except Exception:
        staged_path.unlink(missing_ok=True)
        raise

    job_path = upload_dir / f"{job.id}.{fmt}"
    try:
        os.replace(staged_path, job_path)
        process_import.delay(job.id, str(job_path))
        logger.info(f"🚀 Import task queued for job {job.id}")
    except Exception as e:
        logger.error(f"💥 Could not queue import {job.id}: {e}", exc_info=True)
        db.delete(job)
        db.commit()
        staged_path.unlink(missing_ok=True)
        job_path.unlink(missing_ok=True)
        raise HTTPException(status_code=500, detail=f"Upload failed: {e}")

    return ImportSubmitResponse(job_id=job.id, status=job.status)


@router.get("", response_model=List[ImportJobResponse])
def list_imports(caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    """List the team's 50 most recent import jobs."""
    return (
        db.query(ImportJob)
        .filter(ImportJob.team_id == caller.team_id)
        .order_by(ImportJob.submitted_at.desc(), ImportJob.id.desc())
        .limit(50)
        .all()
    )


@router.get("/{job_id}", response_model=ImportJobResponse)
def get_import_status(
    job_id: str, caller: Caller = Depends(get_caller), db: Session = Depends(get_db)
):
    """
    Get import job status and progress.

    Safe to poll at any cadence.
    """
    return _get_team_job(db, job_id, caller)


@router.get("/{job_id}/stream")
def stream_import_progress(
    job_id: str, caller: Caller = Depends(get_caller), db: Session = Depends(get_db)
):
    """Server-Sent Events stream of import snapshots."""
    job = _get_team_job(db, job_id, caller)

    def load_snapshot():
        with SessionLocal() as session:
            current = session.get(ImportJob, job_id)
            return ImportJobResponse.model_validate(current).model_dump(mode="json")

    return sse_response(import_topic(job.id), load_snapshot, IMPORT_TERMINAL_STATUSES)


@router.post("/{job_id}/cancel", response_model=ImportJobResponse)
def cancel_import(
    job_id: str, caller: Caller = Depends(get_caller), db: Session = Depends(get_db)
):
    """
    Ask the processing loop to stop before its next chunk.

    Chunks already committed stay in place.
    """
    job = _get_team_job(db, job_id, caller)
    if job.status != "processing":
        raise HTTPException(status_code=409, detail=f"Import is already {job.status}")
    if job.cancel_requested_at is None:
        job.cancel_requested_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(job)
        logger.info(f"🛑 Cancellation requested for import {job.id} by {caller.user_id}")
    return job


@router.delete("/{job_id}", status_code=204)
def delete_import(
    job_id: str, caller: Caller = Depends(get_caller), db: Session = Depends(get_db)
):
    """Delete a finished import job record. Imported records are kept."""
    job = _get_team_job(db, job_id, caller)
    if not job.is_terminal:
        raise HTTPException(status_code=409, detail="Import is still processing")
    db.delete(job)
    db.commit()
    return None
