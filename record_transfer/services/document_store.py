"""
Document store interface and its SQLAlchemy implementation.

The store exposes get/set/update/delete, atomic batched writes capped at
``max_batch_size`` and filtered, keyset-paginated queries ordered by id.
"""
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Protocol, Sequence

from sqlalchemy import func, or_, select, text
from sqlalchemy.orm import Session, sessionmaker

from record_transfer.models.document import Document

CONDITION_OPS = ("==", "!=", "<", "<=", ">", ">=", "in", "prefix", "contains", "contains_any")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Condition:
    """A single predicate on a dotted field path."""

    path: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in CONDITION_OPS:
            raise ValueError(f"Unsupported operator: {self.op}")
        if not self.path or any(not part for part in self.path.split(".")):
            raise ValueError(f"Invalid field path: {self.path!r}")


class WriteBatch:
    """Collects writes and commits them as one atomic operation."""

    def __init__(self, store: "DocumentStore") -> None:
        self._store = store
        self._writes: list[tuple[str, str, str, Optional[dict[str, Any]]]] = []

    def __len__(self) -> int:
        return len(self._writes)

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> "WriteBatch":
        self._writes.append(("set", collection, doc_id, data))
        return self

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> "WriteBatch":
        self._writes.append(("update", collection, doc_id, fields))
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        self._writes.append(("delete", collection, doc_id, None))
        return self

    def commit(self, timeout: Optional[float] = None) -> None:
        """
        Apply every write or none of them.

        Raises:
            ValueError: If the batch holds more than the store's limit
            TimeoutError: If the store gives up after ``timeout`` seconds
        """
        if len(self._writes) > self._store.max_batch_size:
            raise ValueError(
                f"Batch of {len(self._writes)} writes exceeds limit of {self._store.max_batch_size}"
            )
        self._store.commit_writes(self._writes, timeout)


class DocumentStore(Protocol):
    """Primitives the pipeline relies on."""

    max_batch_size: int

    def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]: ...

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None: ...

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None: ...

    def delete(self, collection: str, doc_id: str) -> None: ...

    def batch(self) -> WriteBatch: ...

    def commit_writes(self, writes: Sequence[tuple], timeout: Optional[float]) -> None: ...

    def query(
        self,
        collection: str,
        conditions: Iterable[Condition] = (),
        limit: Optional[int] = None,
        start_after: Optional[str] = None,
    ) -> list[tuple[str, dict[str, Any]]]: ...

    def count(self, collection: str, conditions: Iterable[Condition] = ()) -> int: ...


class SqlDocumentStore:
    """Document store over the ``documents`` table."""

    def __init__(self, session_factory: sessionmaker, max_batch_size: int = 500) -> None:
        self._session_factory = session_factory
        self.max_batch_size = max_batch_size

    def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        with self._session_factory() as session:
            doc = session.get(Document, (collection, doc_id))
            return dict(doc.data) if doc else None

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self.batch().set(collection, doc_id, data).commit()

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        self.batch().update(collection, doc_id, fields).commit()

    def delete(self, collection: str, doc_id: str) -> None:
        self.batch().delete(collection, doc_id).commit()

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    def commit_writes(self, writes: Sequence[tuple], timeout: Optional[float]) -> None:
        """Run all writes in a single transaction."""
        with self._session_factory() as session:
            try:
                if timeout is not None:
                    _apply_timeout(session, timeout)

                pending: dict[tuple[str, str], dict[str, Any]] = {}
                for op, collection, doc_id, payload in writes:
                    if op == "set":
                        # Same key twice in one INSERT .. ON CONFLICT is rejected, keep last
                        pending[(collection, doc_id)] = payload
                        continue
                    self._flush_sets(session, pending)
                    if op == "update":
                        doc = session.get(Document, (collection, doc_id))
                        if doc is None:
                            raise KeyError(f"Document {collection}/{doc_id} does not exist")
                        doc.data = {**doc.data, **payload}
                    else:
                        session.query(Document).filter(
                            Document.collection == collection, Document.doc_id == doc_id
                        ).delete()
                    session.flush()
                self._flush_sets(session, pending)
                session.commit()
            except Exception:
                session.rollback()
                raise

    def _flush_sets(self, session: Session, pending: dict[tuple[str, str], dict]) -> None:
        if not pending:
            return
        logger.debug(f"Upserting {len(pending)} documents")

        dialect = session.get_bind().dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            raise NotImplementedError(f"Upsert not supported on {dialect}")

        rows = [
            {"collection": collection, "doc_id": doc_id, "data": data}
            for (collection, doc_id), data in pending.items()
        ]
        stmt = insert(Document).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=["collection", "doc_id"],
            set_={"data": stmt.excluded.data, "updated_at": func.now()},
        )
        session.execute(stmt)
        pending.clear()

    def query(
        self,
        collection: str,
        conditions: Iterable[Condition] = (),
        limit: Optional[int] = None,
        start_after: Optional[str] = None,
    ) -> list[tuple[str, dict[str, Any]]]:
        stmt = select(Document.doc_id, Document.data).where(
            Document.collection == collection, *[_clause(c) for c in conditions]
        )
        if start_after is not None:
            stmt = stmt.where(Document.doc_id > start_after)
        stmt = stmt.order_by(Document.doc_id)
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._session_factory() as session:
            return [(doc_id, data) for doc_id, data in session.execute(stmt)]

    def count(self, collection: str, conditions: Iterable[Condition] = ()) -> int:
        stmt = select(func.count()).select_from(Document).where(
            Document.collection == collection, *[_clause(c) for c in conditions]
        )
        with self._session_factory() as session:
            return session.execute(stmt).scalar_one()


def _clause(condition: Condition):
    parts = tuple(condition.path.split("."))
    element = Document.data[parts] if len(parts) > 1 else Document.data[parts[0]]
    op, value = condition.op, condition.value

    if op == "in":
        return element.as_string().in_([str(v) for v in value])
    if op == "prefix":
        return func.lower(element.as_string()).startswith(str(value).lower(), autoescape=True)
    if op == "contains":
        return func.lower(element.as_string()).contains(str(value).lower(), autoescape=True)
    if op == "contains_any":
        lowered = func.lower(element.as_string())
        return or_(*[lowered.contains(str(v).lower(), autoescape=True) for v in value])

    if isinstance(value, bool):
        column = element.as_boolean()
    elif isinstance(value, (int, float)):
        column = element.as_float()
    else:
        column = element.as_string()
        value = str(value)

    if op == "==":
        return column == value
    if op == "!=":
        return column != value
    if op == "<":
        return column < value
    if op == "<=":
        return column <= value
    if op == ">":
        return column > value
    return column >= value


def _apply_timeout(session: Session, timeout: float) -> None:
    """Bound how long one commit may wait on the database."""
    millis = max(int(timeout * 1000), 1)
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        session.execute(text(f"SET LOCAL statement_timeout = {millis}"))
    elif dialect == "sqlite":
        # Connection-wide; stays in effect for the pooled connection
        session.execute(text(f"PRAGMA busy_timeout = {millis}"))
