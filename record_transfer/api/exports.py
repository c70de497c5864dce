"""Record export API endpoints."""
import logging
import os
from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from record_transfer.api.streaming import sse_response
from record_transfer.config import get_settings
from record_transfer.database import SessionLocal, get_db
from record_transfer.dependencies import Caller, get_caller, get_credit_gate, get_document_store
from record_transfer.errors import CreditError
from record_transfer.models.export_job import EXPORT_TERMINAL_STATUSES, ExportJob
from record_transfer.schemas.exports import (
    ExportCreateResponse,
    ExportJobResponse,
    ExportPreviewRequest,
    ExportPreviewResponse,
    ExportRequest,
)
from record_transfer.services.credits import CreditGate
from record_transfer.services.document_store import DocumentStore
from record_transfer.services.export_service import (
    get_export_preview,
    get_export_status,
    initiate_export,
)
from record_transfer.services.progress import export_topic
from record_transfer.services.signing import verify_download
from record_transfer.tasks.export_tasks import process_export

router = APIRouter(prefix="/api/exports", tags=["exports"])

settings = get_settings()
logger = logging.getLogger(__name__)

CONTENT_TYPES = {"csv": "text/csv", "json": "application/json"}


@router.post("", response_model=ExportCreateResponse, status_code=202)
def create_export(
    request: ExportRequest,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
    store: DocumentStore = Depends(get_document_store),
    gate: CreditGate = Depends(get_credit_gate),
):
    """
    Queue an export of the records matching ``filters``.

    Returns the export id to poll. 412 when the team's export credits cannot
    cover the matching record count.
    """
    try:
        job = initiate_export(
            db,
            store,
            gate,
            settings,
            team_id=caller.team_id,
            user_id=caller.user_id,
            filters=request.filters,
            export_format=request.format,
            fields=request.fields,
        )
    except CreditError as e:
        raise HTTPException(status_code=412, detail=e.message)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        process_export.delay(job.id)
        logger.info(f"🚀 Export task queued for {job.id}")
    except Exception as e:
        logger.error(f"💥 Could not queue export {job.id}: {e}", exc_info=True)
        # A queued export always has a task behind it
        job.status = "failed"
        job.error = f"Could not queue export: {e}"
        job.completed_at = datetime.now(timezone.utc)
        db.commit()
        raise HTTPException(status_code=500, detail=f"Export failed to start: {e}")

    return ExportCreateResponse(export_id=job.id, status=job.status)


@router.post("/preview", response_model=ExportPreviewResponse)
def preview_export(
    request: ExportPreviewRequest,
    caller: Caller = Depends(get_caller),
    store: DocumentStore = Depends(get_document_store),
):
    """Count matching records before committing to a full export."""
    try:
        count = get_export_preview(store, settings, request.filters)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ExportPreviewResponse(count=count)


@router.get("", response_model=List[ExportJobResponse])
def list_exports(caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    """List the team's 50 most recent exports."""
    return (
        db.query(ExportJob)
        .filter(ExportJob.team_id == caller.team_id)
        .order_by(ExportJob.created_at.desc(), ExportJob.id.desc())
        .limit(50)
        .all()
    )


@router.get("/{export_id}", response_model=ExportJobResponse)
def get_export(
    export_id: str, caller: Caller = Depends(get_caller), db: Session = Depends(get_db)
):
    """
    Export status, progress and, once completed, the signed download URL.

    Unknown ids and other teams' exports are both 404.
    """
    return get_export_status(db, export_id, caller.team_id)


@router.get("/{export_id}/stream")
def stream_export_progress(
    export_id: str, caller: Caller = Depends(get_caller), db: Session = Depends(get_db)
):
    """Server-Sent Events stream of export snapshots."""
    job = get_export_status(db, export_id, caller.team_id)

    def load_snapshot():
        with SessionLocal() as session:
            current = session.get(ExportJob, export_id)
            return ExportJobResponse.model_validate(current).model_dump(mode="json")

    return sse_response(export_topic(job.id), load_snapshot, EXPORT_TERMINAL_STATUSES)


@router.get("/{export_id}/download")
def download_export(
    export_id: str,
    expires: int = Query(...),
    signature: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
):
    """Serve a completed artifact. The signed URL is the credential."""
    if not verify_download(export_id, expires, signature, settings.signing_secret):
        raise HTTPException(status_code=403, detail="Download link is invalid or expired")

    job = db.query(ExportJob).filter(ExportJob.id == export_id).first()
    if not job or job.status != "completed" or not job.artifact_path:
        raise HTTPException(status_code=404, detail="Export not found")
    if not os.path.exists(job.artifact_path):
        raise HTTPException(status_code=410, detail="Export artifact is no longer available")

    return FileResponse(
        job.artifact_path,
        media_type=CONTENT_TYPES[job.format],
        filename=os.path.basename(job.artifact_path),
    )
