"""Record types flowing through the import pipeline."""
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class RawRecord:
    """A loosely-typed record exactly as parsed, with its 0-based source position."""

    index: int
    fields: dict[str, Any]
    line: Optional[int] = None


@dataclass
class ImportableRecord:
    """A validated record ready to be upserted under its stable identifier."""

    index: int
    record_id: str
    data: dict[str, Any] = field(default_factory=dict)
