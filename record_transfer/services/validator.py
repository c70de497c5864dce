"""Per-record validation: turns a RawRecord into an ImportableRecord."""
import json
import logging
from typing import Any, Iterable, Optional, Sequence

from record_transfer.errors import RecordRejected
from record_transfer.services.records import ImportableRecord, RawRecord

MISSING_IDENTIFIER = "missing identifier"
INVALID_IDENTIFIER = "invalid identifier"
DOCUMENT_TOO_LARGE = "record exceeds maximum document size"

logger = logging.getLogger(__name__)


def validate_record(
    raw: RawRecord,
    id_fields: Sequence[str] = ("id",),
    numeric_fields: Iterable[str] = (),
    max_document_bytes: Optional[int] = None,
) -> ImportableRecord:
    """
    Check that a record can be safely upserted and convert it.

    Dotted keys (``financials.revenue``) are expanded into nested objects and
    the configured numeric paths are coerced to floats.

    Args:
        raw: Parsed record
        id_fields: Candidate identifier keys, first non-empty value wins
        numeric_fields: Dotted paths to coerce to float
        max_document_bytes: Store per-document size limit

    Returns:
        ImportableRecord keyed by its identifier

    Raises:
        RecordRejected: With a human-readable reason
    """
    record_id = _find_identifier(raw.fields, id_fields)
    if record_id is None:
        raise RecordRejected(MISSING_IDENTIFIER, raw.index)
    if "/" in record_id:
        raise RecordRejected(INVALID_IDENTIFIER, raw.index)

    data = _expand_dotted(raw)
    for path in numeric_fields:
        _coerce_number(data, path)

    if max_document_bytes is not None:
        size = len(json.dumps(data, default=str, ensure_ascii=False).encode("utf-8"))
        if size > max_document_bytes:
            raise RecordRejected(DOCUMENT_TOO_LARGE, raw.index)

    return ImportableRecord(index=raw.index, record_id=record_id, data=data)


def _find_identifier(fields: dict[str, Any], id_fields: Sequence[str]) -> Optional[str]:
    for name in id_fields:
        value = fields.get(name)
        if value is None or isinstance(value, (dict, list, bool)):
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def _expand_dotted(raw: RawRecord) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for key, value in raw.fields.items():
        if "." not in key:
            if isinstance(data.get(key), dict):
                raise RecordRejected(f"conflicting field '{key}'", raw.index)
            data[key] = value
            continue

        *parents, leaf = key.split(".")
        node = data
        for part in parents:
            child = node.setdefault(part, {})
            if not isinstance(child, dict):
                raise RecordRejected(f"conflicting field '{key}'", raw.index)
            node = child
        node[leaf] = value
    return data


def _coerce_number(data: dict[str, Any], path: str) -> None:
    *parents, leaf = path.split(".")
    node = data
    for part in parents:
        node = node.get(part)
        if not isinstance(node, dict):
            return
    if leaf not in node:
        return

    value = node[leaf]
    if value is None or isinstance(value, bool):
        return
    if isinstance(value, (int, float)):
        node[leaf] = float(value)
        return
    text = str(value).strip().replace(" ", "").replace(",", ".")
    try:
        node[leaf] = float(text) if text else None
    except ValueError:
        logger.debug(f"Dropping non-numeric value for {path}: {value!r}")
        node[leaf] = None
