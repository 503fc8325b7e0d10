"""Linear search for the smallest vulnerable bloat size.

Vulnerability is not known to be monotonic in the schema size, so the search
steps by one and never skips a size. It is unbounded on purpose: a caller that
needs it to stop wraps the size iterator with :func:`limit_attempts` or
:func:`until_deadline`.
"""
from __future__ import annotations

import itertools
import logging
import time
from typing import Callable, Iterable, Iterator, Optional

from .tester import auto_test

Predicate = Callable[[int], bool]


class SearchExhausted(RuntimeError):
    """The caller-supplied bound ran out before a vulnerable size was found."""

    def __init__(self, start: int, last: Optional[int], attempts: int):
        self.start = start
        self.last = last
        self.attempts = attempts
        super().__init__(
            f"no vulnerable size found after {attempts} attempt(s) starting at {start}"
            + (f" (last tried {last})" if last is not None else "")
        )


def candidate_sizes(start: int) -> Iterator[int]:
    """start, start + 1, start + 2, ... without end."""

    if isinstance(start, bool) or not isinstance(start, int):
        raise TypeError(f"start must be an int (got {start!r})")
    if start < 0:
        raise ValueError(f"start must be >= 0 (got {start})")
    return itertools.count(start)


def limit_attempts(sizes: Iterable[int], max_attempts: int) -> Iterator[int]:
    if max_attempts < 0:
        raise ValueError(f"max_attempts must be >= 0 (got {max_attempts})")
    return itertools.islice(sizes, max_attempts)


def until_deadline(
    sizes: Iterable[int],
    seconds: float,
    clock: Callable[[], float] = time.monotonic,
) -> Iterator[int]:
    """Yield sizes until ``seconds`` have elapsed; a running test is never interrupted."""

    deadline = clock() + seconds
    for size in sizes:
        if clock() >= deadline:
            logging.warning("Search deadline of %.1fs reached before size %d", seconds, size)
            return
        yield size


def first_vulnerable_size(
    start: int,
    is_vulnerable: Predicate = auto_test,
    sizes: Optional[Iterable[int]] = None,
) -> int:
    """Return the first size from ``sizes`` (default: ``start`` upwards) that is vulnerable."""

    # validates start even when the caller supplies the sizes
    candidates = candidate_sizes(start)
    if sizes is not None:
        candidates = iter(sizes)
    attempts = 0
    last: Optional[int] = None
    for size in candidates:
        attempts += 1
        last = size
        if is_vulnerable(size):
            logging.info("First vulnerable bloat size: %d (after %d attempt(s))", size, attempts)
            return size
        logging.info("Bloat size %d is not vulnerable", size)
    raise SearchExhausted(start, last, attempts)
