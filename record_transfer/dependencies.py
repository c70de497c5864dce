"""Shared collaborators for API endpoints and background tasks."""
from dataclasses import dataclass
from functools import lru_cache

from fastapi import Header

from record_transfer.config import get_settings
from record_transfer.database import SessionLocal
from record_transfer.services.credits import CreditGate, SqlCreditGate
from record_transfer.services.document_store import DocumentStore, SqlDocumentStore
from record_transfer.services.progress import ProgressChannel, RedisProgressChannel


@dataclass
class Caller:
    """Team and user the request acts for. Authentication happens upstream."""

    team_id: str
    user_id: str


def get_caller(
    team_id: str = Header(..., alias="X-Team-Id", min_length=1),
    user_id: str = Header(..., alias="X-User-Id", min_length=1),
) -> Caller:
    return Caller(team_id=team_id, user_id=user_id)


@lru_cache
def get_document_store() -> DocumentStore:
    return SqlDocumentStore(SessionLocal, max_batch_size=get_settings().max_batch_size)


@lru_cache
def get_credit_gate() -> CreditGate:
    return SqlCreditGate(SessionLocal)


@lru_cache
def get_progress_channel() -> ProgressChannel:
    return RedisProgressChannel(get_settings().redis_url)
