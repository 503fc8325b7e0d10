"""Datom log export and import.

The log is UTF-8 text with one JSON object per line::

    {"e": 3, "a": "name", "v": "Markus", "tx": 536870914, "added": true}

Export walks the snapshot's EAVT index over the full history. Import replays the
lines as history in file order. Loading history does not move the store's
transaction counter, so import first scans the whole file for the largest tx id
and sets the counter to it; that first pass also validates every line, so a
malformed log is rejected before anything is written.
"""
from __future__ import annotations

import json
import logging
import time
from itertools import islice
from pathlib import Path
from typing import Iterator, List, Optional, Union

from .backends import Connection, Database
from .config import DEFAULT_BATCH_SIZE
from .model import Datom

PathLike = Union[str, Path]

FIELDS = ("e", "a", "v", "tx", "added")


class LogParseError(ValueError):
    """A log line that cannot be turned back into a datom."""

    def __init__(self, reason: str, path: Optional[PathLike] = None, line_no: Optional[int] = None):
        self.reason = reason
        self.path = path
        self.line_no = line_no
        where = f"{path}:{line_no}: " if path is not None and line_no is not None else ""
        super().__init__(f"{where}{reason}")


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def format_datom(datom: Datom) -> str:
    return json.dumps(datom.as_dict(), ensure_ascii=False, separators=(", ", ": "))


def parse_line(text: str) -> Datom:
    """Parse one log line, rejecting anything that is not exactly a datom."""

    line = text.rstrip("\r\n")
    if not line.strip():
        raise LogParseError("blank line")
    try:
        record = json.loads(line)
    except json.JSONDecodeError as exc:
        raise LogParseError(f"not JSON: {exc.msg}") from exc
    if not isinstance(record, dict):
        raise LogParseError(f"expected an object, got {type(record).__name__}")
    keys = set(record)
    missing = [name for name in FIELDS if name not in keys]
    if missing:
        raise LogParseError(f"missing field(s): {', '.join(missing)}")
    extra = sorted(keys - set(FIELDS))
    if extra:
        raise LogParseError(f"unexpected field(s): {', '.join(extra)}")

    e, a, v, tx, added = (record[name] for name in FIELDS)
    if not _is_int(e) or e < 0:
        raise LogParseError(f"e must be a non-negative int (got {e!r})")
    if not isinstance(a, str) or not a:
        raise LogParseError(f"a must be a non-empty string (got {a!r})")
    if not isinstance(v, (str, int, float, bool)):
        raise LogParseError(f"v must be a string, number or boolean (got {v!r})")
    if not _is_int(tx) or tx <= 0:
        raise LogParseError(f"tx must be a positive int (got {tx!r})")
    if not isinstance(added, bool):
        raise LogParseError(f"added must be a boolean (got {added!r})")
    return Datom(e=e, a=a, v=v, tx=tx, added=added)


def read_log(path: PathLike) -> Iterator[Datom]:
    # Lines are decoded one by one so a bad byte is reported with its line.
    with open(path, "rb") as fh:
        for line_no, raw in enumerate(fh, start=1):
            try:
                line = raw.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise LogParseError(f"not UTF-8 ({exc.reason} at byte {exc.start})", path, line_no) from exc
            try:
                yield parse_line(line)
            except LogParseError as exc:
                raise LogParseError(exc.reason, path, line_no) from exc


def export_db(db: Database, path: PathLike) -> int:
    """Write every datom of ``db`` to ``path`` in EAVT order; return the count."""

    count = 0
    with open(path, "w", encoding="utf-8") as fh:
        for datom in db.datoms("eavt"):
            fh.write(format_datom(datom))
            fh.write("\n")
            count += 1
    logging.info("Exported %d datoms to %s", count, path)
    return count


def max_tx_in_log(path: PathLike) -> Optional[int]:
    """Largest tx in the log, or None for an empty log.

    The last line is not necessarily the largest tx, since lines follow the
    index order rather than commit order.
    """

    best: Optional[int] = None
    for datom in read_log(path):
        if best is None or datom.tx > best:
            best = datom.tx
    return best


def batches(datoms: Iterator[Datom], size: int) -> Iterator[List[Datom]]:
    while True:
        chunk = list(islice(datoms, size))
        if not chunk:
            return
        yield chunk


def import_db(conn: Connection, path: PathLike, batch_size: int = DEFAULT_BATCH_SIZE) -> int:
    """Load the log at ``path`` into ``conn``; return the number of datoms imported."""

    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1 (got {batch_size})")
    logging.info("Preparing import of %s in batches of %d", path, batch_size)
    max_tx = max_tx_in_log(path)
    if max_tx is not None:
        conn.set_max_tx(max_tx)
        logging.info("max-tx set to %d from %s", max_tx, path)

    start = time.perf_counter()
    imported = 0
    for batch_no, chunk in enumerate(batches(read_log(path), batch_size), start=1):
        conn.transact(chunk)
        imported += len(chunk)
        logging.info("Importing batch %d (%d datoms, %d total)", batch_no, len(chunk), imported)
    logging.info("Imported %d datoms from %s in %.3fs", imported, path, time.perf_counter() - start)
    return imported
