"""Parse CSV and JSON import files into ordered raw records."""
import csv
import io
import json
import logging
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

from record_transfer.errors import ParseError
from record_transfer.services.records import RawRecord

SUPPORTED_FORMATS = ("csv", "json")

logger = logging.getLogger(__name__)


def detect_format(filename: str) -> Optional[str]:
    """Return the import format implied by a file name, or None."""
    suffix = Path(filename).suffix.lower().lstrip(".")
    return suffix if suffix in SUPPORTED_FORMATS else None


def parse_records(stream: BinaryIO, source_format: str) -> Iterator[RawRecord]:
    """
    Lazily parse a binary stream into records, preserving source order.

    Args:
        stream: Binary file object positioned at the start of the data
        source_format: "csv" or "json"

    Returns:
        Iterator of RawRecord

    Raises:
        ParseError: On unsupported format or malformed syntax. For CSV the
            error is raised when the offending row is reached.
    """
    if source_format == "csv":
        return _parse_csv(stream)
    if source_format == "json":
        return _parse_json(stream)
    raise ParseError(f"Unsupported format: {source_format}")


def count_records(stream: BinaryIO, source_format: str) -> int:
    """Parse the whole stream and return the number of records."""
    return sum(1 for _ in parse_records(stream, source_format))


def _parse_csv(stream: BinaryIO) -> Iterator[RawRecord]:
    text = io.TextIOWrapper(stream, encoding="utf-8-sig", newline="")
    reader = csv.reader(text, strict=True)
    try:
        header = next(reader, None)
        if header is None:
            return
        columns = [name.strip() for name in header]
        if any(not name for name in columns):
            raise ParseError("Header contains an empty column name", line=1)
        duplicates = {name for name in columns if columns.count(name) > 1}
        if duplicates:
            raise ParseError(
                f"Header contains duplicate columns: {', '.join(sorted(duplicates))}",
                line=1,
            )

        index = 0
        for row in reader:
            if not row or all(not cell.strip() for cell in row):
                continue
            if len(row) > len(columns):
                raise ParseError(
                    f"Expected {len(columns)} fields, found {len(row)}",
                    line=reader.line_num,
                )
            values = row + [""] * (len(columns) - len(row))
            yield RawRecord(
                index=index, fields=dict(zip(columns, values)), line=reader.line_num
            )
            index += 1
    except csv.Error as e:
        raise ParseError(f"CSV syntax error: {e}", line=reader.line_num) from e
    except UnicodeDecodeError as e:
        raise ParseError(f"File is not valid UTF-8: {e.reason}", offset=e.start) from e
    finally:
        # Leave the caller's stream open
        text.detach()


def _parse_json(stream: BinaryIO) -> Iterator[RawRecord]:
    try:
        data = json.load(stream)
    except json.JSONDecodeError as e:
        raise ParseError(f"JSON syntax error: {e.msg}", line=e.lineno, offset=e.pos) from e
    except UnicodeDecodeError as e:
        raise ParseError(f"File is not valid UTF-8: {e.reason}", offset=e.start) from e

    if isinstance(data, dict):
        logger.debug("JSON file holds a single object, importing it as one record")
        yield RawRecord(index=0, fields=data)
        return
    if not isinstance(data, list):
        raise ParseError("JSON document must be an array of objects or a single object")

    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise ParseError(f"Record {index} is not a JSON object")
        yield RawRecord(index=index, fields=item)
