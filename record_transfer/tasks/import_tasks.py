"""Celery tasks for record import processing."""
import logging
import os

from record_transfer.config import get_settings
from record_transfer.database import SessionLocal
from record_transfer.dependencies import get_credit_gate, get_document_store, get_progress_channel
from record_transfer.services.import_pipeline import run_import
from record_transfer.tasks.celery_app import celery_app

settings = get_settings()
logger = logging.getLogger(__name__)


@celery_app.task(bind=True)
def process_import(self, job_id: str, file_path: str) -> dict:
    """
    Process a staged import file in background.
    This runs in Celery worker, NOT in web request context.

    Args:
        self: Celery task instance
        job_id: Import job ID
        file_path: Local path to the staged file

    Returns:
        Dict with final job status and counts
    """
    logger.info(f"🚀 Starting import task: job_id={job_id}, file_path={file_path}")
    db = SessionLocal()
    try:
        job = run_import(
            db,
            job_id,
            file_path,
            store=get_document_store(),
            gate=get_credit_gate(),
            channel=get_progress_channel(),
            settings=settings,
        )
        result = {
            "status": job.status,
            "job_id": job.id,
            "total_records": job.total_records,
            "successful_records": job.successful_records,
            "failed_records": job.failed_records,
        }
        logger.info(f"🎉 Import task finished: {result}")
        return result

    except Exception as e:
        logger.error(f"💥 Import task failed for job {job_id}: {e}", exc_info=True)
        raise

    finally:
        db.close()
        try:
            if os.path.exists(file_path):
                os.remove(file_path)
                logger.info(f"🧹 Staged file cleaned up: {file_path}")
        except OSError as cleanup_error:
            logger.warning(f"⚠️ Failed to clean up staged file {file_path}: {cleanup_error}")
