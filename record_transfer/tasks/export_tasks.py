"""Celery tasks for export processing."""
import logging

from record_transfer.config import get_settings
from record_transfer.database import SessionLocal
from record_transfer.dependencies import get_credit_gate, get_document_store, get_progress_channel
from record_transfer.services.export_service import run_export
from record_transfer.tasks.celery_app import celery_app

settings = get_settings()
logger = logging.getLogger(__name__)


@celery_app.task(bind=True, soft_time_limit=settings.export_time_limit_seconds)
def process_export(self, export_id: str) -> dict:
    """
    Build the export artifact in background.

    Hitting the soft time limit raises inside the worker loop, which marks
    the export failed.
    """
    logger.info(f"🚀 Starting export task: export_id={export_id}")
    db = SessionLocal()
    try:
        job = run_export(
            db,
            export_id,
            store=get_document_store(),
            gate=get_credit_gate(),
            channel=get_progress_channel(),
            settings=settings,
        )
        return {"status": job.status, "export_id": job.id, "total_records": job.total_records}
    finally:
        db.close()
