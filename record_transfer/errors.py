"""
Error taxonomy for import and export jobs.

Per-record and per-chunk errors are accumulated on the job and never escape
the processing loop. Only ParseError and InfrastructureError end an import
as ``failed``.
"""
from typing import Any, Optional


class TransferError(Exception):
    """Base exception for all record transfer errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ParseError(TransferError):
    """Malformed input file. Aborts the whole job before any write."""

    def __init__(
        self, message: str, line: Optional[int] = None, offset: Optional[int] = None
    ) -> None:
        self.line = line
        self.offset = offset
        details = {}
        if line is not None:
            details["line"] = line
        if offset is not None:
            details["offset"] = offset
        super().__init__(message, details)


class RecordRejected(TransferError):
    """A single record failed validation and is excluded from every batch."""

    def __init__(self, reason: str, record_index: int) -> None:
        self.reason = reason
        self.record_index = record_index
        super().__init__(reason, {"record_index": record_index})


class CommitError(TransferError):
    """A chunk could not be committed; every record in it counts as failed."""

    def __init__(
        self, chunk_index: int, first_index: int, last_index: int, cause: Exception
    ) -> None:
        self.chunk_index = chunk_index
        self.first_index = first_index
        self.last_index = last_index
        self.cause = cause
        super().__init__(
            f"Chunk {chunk_index} (records {first_index}-{last_index}) failed to commit: {cause}",
            {"chunk_index": chunk_index},
        )


class CreditError(TransferError):
    """Credit check or charge rejected for a team."""

    def __init__(self, team_id: str, credit_type: str, units: int, message: str = "") -> None:
        self.team_id = team_id
        self.credit_type = credit_type
        self.units = units
        super().__init__(
            message or f"Insufficient {credit_type} credits for {units} units",
            {"team_id": team_id, "credit_type": credit_type, "units": units},
        )


class InfrastructureError(TransferError):
    """Store or job tracker unavailable outside a chunk commit."""


class JobNotFoundError(TransferError):
    """Raised when an import or export job does not exist for the caller."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}", {"job_id": job_id})


class JobStateError(TransferError):
    """Illegal lifecycle transition, e.g. mutating a terminal job."""


class ExportFailedError(TransferError):
    """The polled export reached the ``failed`` state."""

    def __init__(self, export_id: str, error: Optional[str]) -> None:
        self.export_id = export_id
        self.error = error
        super().__init__(f"Export {export_id} failed: {error or 'unknown error'}")


class PollError(TransferError):
    """A status poll request errored or the poll budget ran out."""
