"""Document model backing the SQL document store."""
from sqlalchemy import JSON, Column, DateTime, String
from sqlalchemy.sql import func

from record_transfer.database import Base


class Document(Base):
    """A schemaless document addressed by collection and id."""

    __tablename__ = "documents"

    collection = Column(String(100), primary_key=True)
    doc_id = Column(String(500), primary_key=True)
    data = Column(JSON, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self):
        return f"<Document(collection='{self.collection}', doc_id='{self.doc_id}')>"
