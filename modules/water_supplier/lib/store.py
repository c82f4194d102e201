from __future__ import annotations

import csv
import logging
import os
from collections.abc import Iterable

from .models import PostcodeRecord
from .state_io import PersistenceError, read_json, write_json

log = logging.getLogger(__name__)

CSV_HEADER = ("postcode", "supplier", "phone", "link")


class ResultStore:
    """
    Ordered, postcode-unique collection of resolved records.

    The postcode index doubles as the scheduler's skip-set: a postcode in the
    store is never queried again. Only the scheduler thread mutates it, after
    each batch barrier, so there is no locking here.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._records: list[PostcodeRecord] = []
        self._index: set[str] = set()

    # ---- lifecycle ----

    def load(self) -> ResultStore:
        """
        Read the results file (missing -> empty). Duplicate postcodes from
        older files are dropped, first occurrence wins.
        """
        data = read_json(self.path, default=[])
        if not isinstance(data, list):
            raise PersistenceError(self.path, f"expected a JSON array, got {type(data).__name__}")

        self._records = []
        self._index = set()
        dupes = 0
        for i, item in enumerate(data):
            if not isinstance(item, dict):
                raise PersistenceError(self.path, f"item[{i}] is not an object")
            try:
                rec = PostcodeRecord.from_dict(item)
            except ValueError as e:
                raise PersistenceError(self.path, f"item[{i}]: {e}") from e
            if not self.add(rec):
                dupes += 1
        if dupes:
            log.info("Dropped %d duplicate postcode(s) while loading %s", dupes, self.path)
        return self

    def flush(self) -> None:
        """Full overwrite; completion order within a batch is not stable, so never append."""
        write_json(self.path, [r.to_dict() for r in self._records])

    # ---- collection API ----

    def add(self, record: PostcodeRecord) -> bool:
        """Append `record` unless its postcode is already known. Returns True if added."""
        if record.postcode in self._index:
            return False
        self._records.append(record)
        self._index.add(record.postcode)
        return True

    def __contains__(self, postcode: object) -> bool:
        return postcode in self._index

    def __len__(self) -> int:
        return len(self._records)

    def records(self) -> list[PostcodeRecord]:
        return list(self._records)

    def postcodes(self) -> set[str]:
        return set(self._index)

    # ---- export ----

    def export_csv(self, path: str, records: Iterable[PostcodeRecord] | None = None) -> int:
        """Write records as CSV (header: postcode,supplier,phone,link). Returns row count."""
        rows = list(records if records is not None else self._records)
        d = os.path.dirname(os.path.abspath(path))
        try:
            os.makedirs(d, exist_ok=True)
            with open(path, "w", encoding="utf-8", newline="") as f:
                w = csv.writer(f)
                w.writerow(CSV_HEADER)
                for r in rows:
                    w.writerow([r.postcode, r.supplier, r.phone, r.link])
        except OSError as e:
            raise PersistenceError(path, f"CSV export failed ({e!r})") from e
        return len(rows)
