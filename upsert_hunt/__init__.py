"""Hunt down an upsert bug in a datom store.

a) :func:`first_vulnerable_size` grows a bloat schema one attribute at a time
   until the store shows the upsert error, and exports that database to a flat
   file of datoms (``db-error`` by default).
b) :func:`upsert_probe` and :func:`upsert_series` transact a series of values
   on one entity and read them back. There are two different errors; the probe
   reports each separately.
c) :func:`replay_case` imports a frozen case into a fresh database and reruns
   the series against it.

The size passed around is the size of the bloat schema. The probed entity id
is two higher.
"""

from .probe import ProbeResult, ProbeStep, upsert_probe, upsert_series
from .replay import REPLAY_VALUES, replay_case
from .schema import big_schema, schema_tx_data
from .search import SearchExhausted, candidate_sizes, first_vulnerable_size, limit_attempts, until_deadline
from .tester import SizeReport, auto_test, check_size
from .transfer import LogParseError, export_db, import_db, max_tx_in_log, parse_line
from .workspace import DatabaseHandle, SetupError

__all__ = [
    "DatabaseHandle",
    "LogParseError",
    "ProbeResult",
    "ProbeStep",
    "REPLAY_VALUES",
    "SearchExhausted",
    "SetupError",
    "SizeReport",
    "auto_test",
    "big_schema",
    "candidate_sizes",
    "check_size",
    "export_db",
    "first_vulnerable_size",
    "import_db",
    "limit_attempts",
    "max_tx_in_log",
    "parse_line",
    "replay_case",
    "schema_tx_data",
    "until_deadline",
    "upsert_probe",
    "upsert_series",
]
