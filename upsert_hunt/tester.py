"""Test one bloat size for the upsert divergence."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .backends import EngineError
from .config import DEFAULT_BASE_VALUE, DEFAULT_OUTPUT_PATH, TRACKED_ATTRIBUTE, HarnessConfig
from .probe import ProbeResult, probe_values, upsert_probe
from .schema import schema_tx_data
from .transfer import export_db
from .workspace import DatabaseHandle, SetupError


@dataclass(frozen=True)
class SizeReport:
    size: int
    entity: int
    probe: ProbeResult
    exported_to: Optional[Path] = None

    @property
    def vulnerable(self) -> bool:
        return self.probe.diverged


def default_handle() -> DatabaseHandle:
    return DatabaseHandle.from_config(HarnessConfig().store)


def check_size(
    x: int,
    *,
    handle: Optional[DatabaseHandle] = None,
    output_path: Union[str, Path] = DEFAULT_OUTPUT_PATH,
    attribute: str = TRACKED_ATTRIBUTE,
    base_value: str = DEFAULT_BASE_VALUE,
) -> SizeReport:
    """Build a fresh database with a bloat schema of size ``x`` and probe it.

    The database is exported to ``output_path`` when the probe diverges and
    deleted afterwards whatever the outcome.
    """

    handle = handle or default_handle()
    logging.info("Testing bloat size %d on %s store %s", x, handle.engine.name, handle.config.id)
    with handle.session() as conn:
        try:
            conn.transact(schema_tx_data(x, attribute))
            conn.transact([{attribute: base_value}])
        except EngineError as exc:
            raise SetupError(f"unable to set up bloat size {x}: {exc}") from exc
        entity = conn.db().max_eid
        result = upsert_probe(conn, entity, attribute, probe_values(base_value))
        exported: Optional[Path] = None
        if result.diverged:
            exported = Path(output_path)
            export_db(conn.db(), exported)
            logging.warning(
                "Bloat size %d is vulnerable (error1=%s error2=%s); case written to %s",
                x,
                result.error1,
                result.error2,
                exported,
            )
    return SizeReport(size=x, entity=entity, probe=result, exported_to=exported)


def auto_test(x: int, **kwargs) -> bool:
    """True when bloat size ``x`` shows either upsert error."""
    return check_size(x, **kwargs).vulnerable

