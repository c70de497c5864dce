"""Tests for the sample data generator script."""
import random

from scripts.generate_csv import COLUMNS, generate_csv
from record_transfer.errors import RecordRejected
from record_transfer.services.parser import parse_records
from record_transfer.services.validator import validate_record


def test_generated_file_imports_cleanly(tmp_path):
    """Test generated rows parse and validate with the domain key as identifier."""
    path = tmp_path / "sample.csv"
    generate_csv(25, str(path))

    with open(path, "rb") as f:
        records = list(parse_records(f, "csv"))

    assert len(records) == 25
    assert list(records[0].fields) == COLUMNS
    record = validate_record(
        records[0], id_fields=("id", "companyId"), numeric_fields=["financials.revenue"]
    )
    assert record.record_id == "comp-00000001"
    assert isinstance(record.data["financials"]["revenue"], float)


def test_missing_id_ratio(tmp_path):
    random.seed(7)
    path = tmp_path / "sample.csv"
    generate_csv(10, str(path), missing_id_ratio=1.0)

    with open(path, "rb") as f:
        rejected = 0
        for raw in parse_records(f, "csv"):
            try:
                validate_record(raw, id_fields=("id", "companyId"))
            except RecordRejected:
                rejected += 1
    assert rejected == 10
