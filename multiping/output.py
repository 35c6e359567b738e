# multiping/output.py
import csv
import logging
import os
from typing import Iterator

from multiping.brain.record import ParsedRecord, Record, parse_row

log = logging.getLogger(__name__)


class RecordWriter:
    """
    Appends one CSV line per finished Record and flushes right away, so an
    interrupted run still leaves usable output.
    """

    def __init__(self, path: str, append: bool = False):
        self.path = path
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        self._f = open(path, "a" if append else "w", encoding="utf-8", newline="")
        self._csv = csv.writer(self._f)
        self.written = 0

    def write(self, record: Record) -> None:
        self._csv.writerow(record.to_row())
        self._f.flush()
        self.written += 1
        log.debug("wrote record for %s (%s)", record.isd_as, record.state.name)

    def close(self) -> None:
        if not self._f.closed:
            self._f.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


class MemoryWriter:
    """Keeps records in a list. Used by tests and dry runs."""

    def __init__(self):
        self.records: list[Record] = []

    def write(self, record: Record) -> None:
        self.records.append(record)

    def close(self) -> None:
        pass


def read_records(path: str) -> Iterator[ParsedRecord]:
    with open(path, encoding="utf-8", newline="") as f:
        for row in csv.reader(f):
            if row:
                yield parse_row(row)
