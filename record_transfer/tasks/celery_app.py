"""Celery application configuration."""
from celery import Celery

from record_transfer.config import get_settings

settings = get_settings()

celery_app = Celery(
    "record_transfer",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["record_transfer.tasks.import_tasks", "record_transfer.tasks.export_tasks"],
)

celery_app.conf.update(
    task_track_started=True,
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Import and export tasks run for minutes; hand out one at a time
    worker_prefetch_multiplier=1,
    result_expires=24 * 60 * 60,
)
