"""Group validated records into provider-legal chunks."""
from dataclasses import dataclass
from itertools import islice
from typing import Iterable, Iterator

from record_transfer.services.records import ImportableRecord


@dataclass
class Chunk:
    """Ordered slice of validated records committed as one atomic write."""

    index: int
    records: list[ImportableRecord]

    def __len__(self) -> int:
        return len(self.records)

    @property
    def first_index(self) -> int:
        return self.records[0].index

    @property
    def last_index(self) -> int:
        return self.records[-1].index


def chunk_records(
    records: Iterable[ImportableRecord], max_batch_size: int
) -> Iterator[Chunk]:
    """
    Yield chunks of at most ``max_batch_size`` records in strict input order.

    The trailing chunk may be smaller than the limit.
    """
    if max_batch_size < 1:
        raise ValueError(f"max_batch_size must be positive, got {max_batch_size}")

    iterator = iter(records)
    chunk_index = 0
    while True:
        batch = list(islice(iterator, max_batch_size))
        if not batch:
            return
        yield Chunk(index=chunk_index, records=batch)
        chunk_index += 1
