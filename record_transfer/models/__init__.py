"""Database models."""
from record_transfer.models.credit import TeamCredit
from record_transfer.models.document import Document
from record_transfer.models.export_job import ExportJob
from record_transfer.models.import_job import ImportJob

__all__ = ["Document", "ExportJob", "ImportJob", "TeamCredit"]
