"""Tests for record validation."""
import pytest

from record_transfer.errors import RecordRejected
from record_transfer.services.records import RawRecord
from record_transfer.services.validator import (
    DOCUMENT_TOO_LARGE,
    INVALID_IDENTIFIER,
    MISSING_IDENTIFIER,
    validate_record,
)


def test_valid_record_keeps_identifier():
    """Test the identifier is taken from the id field."""
    record = validate_record(RawRecord(index=4, fields={"id": " rec-1 ", "name": "Acme"}))
    assert record.record_id == "rec-1"
    assert record.index == 4
    assert record.data["name"] == "Acme"


@pytest.mark.parametrize("fields", [{"name": "Acme"}, {"id": "", "name": "Acme"}, {"id": "   "}])
def test_missing_identifier_is_rejected(fields):
    """Test absent or blank identifiers are rejected."""
    with pytest.raises(RecordRejected) as excinfo:
        validate_record(RawRecord(index=7, fields=fields))
    assert excinfo.value.reason == MISSING_IDENTIFIER
    assert excinfo.value.record_index == 7


def test_falls_back_to_domain_key():
    """Test the next configured identifier field is used."""
    record = validate_record(
        RawRecord(index=0, fields={"id": "", "companyId": "comp-9"}),
        id_fields=("id", "companyId"),
    )
    assert record.record_id == "comp-9"


def test_numeric_identifier_from_json():
    """Test numeric ids are stringified."""
    assert validate_record(RawRecord(index=0, fields={"id": 42})).record_id == "42"


def test_identifier_with_slash_is_invalid():
    """Test ids that cannot be document keys are rejected."""
    with pytest.raises(RecordRejected) as excinfo:
        validate_record(RawRecord(index=0, fields={"id": "a/b"}))
    assert excinfo.value.reason == INVALID_IDENTIFIER


def test_dotted_keys_expand_to_nested_objects():
    """Test CSV dotted headers become nested data."""
    record = validate_record(
        RawRecord(
            index=0,
            fields={"id": "1", "location.municipality": "Oslo", "location.county": "Oslo"},
        )
    )
    assert record.data["location"] == {"municipality": "Oslo", "county": "Oslo"}


def test_conflicting_paths_are_rejected():
    """Test a scalar and a nested path on the same key."""
    with pytest.raises(RecordRejected, match="conflicting"):
        validate_record(RawRecord(index=0, fields={"id": "1", "info": "x", "info.size": "2"}))


def test_numeric_fields_are_coerced():
    """Test revenue strings with decimal commas become floats."""
    record = validate_record(
        RawRecord(
            index=0,
            fields={"id": "1", "financials.revenue": "1 234,5", "financials.profit": "n/a"},
        ),
        numeric_fields=["financials.revenue", "financials.profit", "missing.path"],
    )
    assert record.data["financials"]["revenue"] == 1234.5
    assert record.data["financials"]["profit"] is None


def test_oversized_record_is_rejected():
    """Test records above the document size limit."""
    with pytest.raises(RecordRejected) as excinfo:
        validate_record(
            RawRecord(index=0, fields={"id": "1", "blob": "x" * 200}), max_document_bytes=100
        )
    assert excinfo.value.reason == DOCUMENT_TOO_LARGE
