"""Import request and response schemas."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ImportErrorEntry(BaseModel):
    """One stored error detail of an import job."""

    record_index: int
    message: str


class ImportSubmitResponse(BaseModel):
    """Response after accepting a file for import."""

    job_id: str
    status: str
    message: str = "File accepted, processing in background"


class ImportJobResponse(BaseModel):
    """Import job snapshot."""

    id: str
    team_id: str
    source_file_name: str
    source_file_size: int
    source_format: str
    status: str
    total_records: int
    processed_records: int
    successful_records: int
    failed_records: int
    progress: int
    errors: list[ImportErrorEntry]
    error_count: int
    submitted_by: str
    submitted_at: datetime
    completed_at: Optional[datetime] = None
    cancel_requested_at: Optional[datetime] = None

    class Config:
        from_attributes = True
