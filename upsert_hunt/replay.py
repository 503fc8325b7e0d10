"""Rehydrate a frozen case and walk it through the manual probe."""
from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from .config import DEFAULT_BATCH_SIZE, TRACKED_ATTRIBUTE
from .model import Value
from .probe import ProbeStep, upsert_series
from .tester import default_handle
from .transfer import PathLike, import_db
from .workspace import DatabaseHandle

REPLAY_VALUES = (
    "Markus",
    "Markus1",
    "Markus",
    "Markus1",
    "Markus2",
    "Markus11",
    "Markus12",
    "Markus3",
)


def replay_case(
    path: PathLike,
    entity: Optional[int] = None,
    attribute: str = TRACKED_ATTRIBUTE,
    values: Sequence[Value] = REPLAY_VALUES,
    *,
    handle: Optional[DatabaseHandle] = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> List[ProbeStep]:
    """Import ``path`` into a fresh database and run ``values`` against ``entity``.

    Without an explicit entity the largest entity id of the imported case is
    used, which is the seed entity the tester probed.
    """

    handle = handle or default_handle()
    with handle.session() as conn:
        import_db(conn, path, batch_size=batch_size)
        target = entity if entity is not None else conn.db().max_eid
        logging.info("Replaying %d value(s) from %s on entity %s", len(values), path, target)
        steps = upsert_series(conn, target, attribute, values)
    diverged = [step for step in steps if not step.matches]
    if diverged:
        logging.warning("%d of %d write(s) read back a different value", len(diverged), len(steps))
    return steps
