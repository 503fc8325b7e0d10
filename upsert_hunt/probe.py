"""Upsert probes.

Both probes hammer one entity/attribute pair with single-attribute upserts and
read the attribute back after each write. The values share a prefix so an
off-by-one in the engine's retract/assert bookkeeping shows up as a wrong but
plausible value instead of an exception.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .backends import Connection
from .config import DEFAULT_BASE_VALUE
from .model import Value


@dataclass(frozen=True)
class ProbeStep:
    written: Value
    read: Optional[Value]

    @property
    def matches(self) -> bool:
        return self.written == self.read


@dataclass(frozen=True)
class ProbeResult:
    # Kept apart: it is not known whether both come from one root cause.
    error1: bool
    error2: bool

    @property
    def diverged(self) -> bool:
        return self.error1 or self.error2


def probe_values(base: str = DEFAULT_BASE_VALUE) -> Tuple[str, str, str, str]:
    """V1..V4 for the automatic probe, e.g. Markus, Markus1, Markus2, Markus11."""
    return (base, f"{base}1", f"{base}2", f"{base}11")


def transact_value(conn: Connection, entity: int, attribute: str, value: Value) -> None:
    conn.transact([{"db/id": entity, attribute: value}])


def pull_value(conn: Connection, entity: int, attribute: str) -> Optional[Value]:
    pulled = conn.db().pull(entity) or {}
    return pulled.get(attribute)  # type: ignore[return-value]


def upsert_series(
    conn: Connection, entity: int, attribute: str, values: Sequence[Value]
) -> List[ProbeStep]:
    """Transact each value in turn and record what was read back."""

    logging.info("Starting series on %s %s", entity, attribute)
    steps: List[ProbeStep] = []
    for value in values:
        transact_value(conn, entity, attribute, value)
        read = pull_value(conn, entity, attribute)
        logging.info("transacting %s --> %s", value, read)
        steps.append(ProbeStep(written=value, read=read))
    return steps


def upsert_probe(
    conn: Connection,
    entity: int,
    attribute: str,
    values: Optional[Sequence[str]] = None,
) -> ProbeResult:
    """Run the fixed seven-step sequence and report both divergence checks.

    write V1, V2, V1 then read (error1 when the read is not V1);
    write V2, V3, V4 then read (error2 when the read is not V4).
    """

    v1, v2, v3, v4 = values if values is not None else probe_values()
    logging.info("Testing entity %s attribute %s", entity, attribute)

    for value in (v1, v2, v1):
        transact_value(conn, entity, attribute, value)
    error1 = pull_value(conn, entity, attribute) != v1

    for value in (v2, v3, v4):
        transact_value(conn, entity, attribute, value)
    error2 = pull_value(conn, entity, attribute) != v4

    logging.info("Errors: %s %s", error1, error2)
    return ProbeResult(error1=error1, error2=error2)
