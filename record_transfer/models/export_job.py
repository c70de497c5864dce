"""Export job model for tracking background exports."""
from sqlalchemy import JSON, Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from record_transfer.database import Base

EXPORT_TERMINAL_STATUSES = ("completed", "failed")


class ExportJob(Base):
    """Model for a filtered export and its downloadable artifact."""

    __tablename__ = "export_jobs"

    id = Column(String(64), primary_key=True)
    team_id = Column(String(128), nullable=False, index=True)
    requested_by = Column(String(128), nullable=False)
    status = Column(
        String(20), nullable=False, default="queued"
    )  # queued, processing, completed, failed
    progress = Column(Integer, default=0, nullable=False)
    format = Column(String(10), nullable=False)
    fields = Column(JSON, default=list, nullable=False)
    filters = Column(JSON, default=dict, nullable=False)
    total_records = Column(Integer, default=0, nullable=False)
    artifact_path = Column(String(1024), nullable=True)
    download_url = Column(Text, nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in EXPORT_TERMINAL_STATUSES
