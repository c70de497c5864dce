"""Import job model for tracking record import progress."""
from sqlalchemy import JSON, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from record_transfer.database import Base

IMPORT_TERMINAL_STATUSES = ("completed", "failed", "canceled")


class ImportJob(Base):
    """Model for tracking one file import from acceptance to a terminal state."""

    __tablename__ = "import_jobs"

    id = Column(String(64), primary_key=True)
    team_id = Column(String(128), nullable=False, index=True)
    source_file_name = Column(String(500), nullable=False)
    source_file_size = Column(Integer, default=0, nullable=False)
    source_format = Column(String(10), nullable=False)  # csv, json
    status = Column(
        String(20), nullable=False, default="processing"
    )  # processing, completed, failed, canceled
    total_records = Column(Integer, default=0, nullable=False)
    processed_records = Column(Integer, default=0, nullable=False)
    successful_records = Column(Integer, default=0, nullable=False)
    failed_records = Column(Integer, default=0, nullable=False)
    progress = Column(Integer, default=0, nullable=False)
    errors = Column(JSON, default=list, nullable=False)
    error_count = Column(Integer, default=0, nullable=False)
    submitted_by = Column(String(128), nullable=False)
    submitted_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancel_requested_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in IMPORT_TERMINAL_STATUSES

    def __repr__(self):
        return f"<ImportJob(id='{self.id}', status='{self.status}', processed={self.processed_records})>"
