"""Shared fixtures.

The fault engines are memory engines with a planted upsert bug that only shows
once the installed schema has at least ``threshold`` bloat attributes:

``stale_engine``
    upsert resolves the current value against every value ever asserted for
    the pair, ignoring retractions. Rewriting an old value is lost (error1).
``lost_write_engine``
    once a pair has collected ``max_assertions`` assertions, further writes to
    it are dropped. The short first half of the probe passes and the tail
    reads back a stale value (error2).
"""
import logging
from typing import Dict, List, Tuple

import pytest

from upsert_hunt.backends.memory import MemoryConnection, MemoryEngine
from upsert_hunt.config import StoreConfig
from upsert_hunt.model import Datom, Value, add_value
from upsert_hunt.schema import schema_tx_data
from upsert_hunt.workspace import DatabaseHandle


class StaleUpsertConnection(MemoryConnection):
    threshold = 10

    def _current_values(self, e: int, a: str) -> List[Value]:
        if len(self.schema()) - 1 < self.threshold:
            return super()._current_values(e, a)
        seen: List[Value] = []
        for datom in self._store.history:
            if datom.e == e and datom.a == a and datom.added:
                add_value(seen, datom.v)
        return seen


class LostWriteConnection(MemoryConnection):
    threshold = 10
    max_assertions = 5

    def _assert(
        self,
        eid: int,
        attribute: str,
        value: object,
        tx: int,
        pending: Dict[Tuple[int, str], List[Value]],
    ) -> List[Datom]:
        if len(self.schema()) - 1 >= self.threshold:
            asserted = sum(
                1 for d in self._store.history if d.e == eid and d.a == attribute and d.added
            )
            if asserted >= self.max_assertions:
                return []
        return super()._assert(eid, attribute, value, tx, pending)


def make_faulty_engine(connection_class, threshold: int) -> MemoryEngine:
    engine = MemoryEngine()
    engine.connection_class = type(
        connection_class.__name__, (connection_class,), {"threshold": threshold}
    )
    return engine


def make_stale_engine(threshold: int) -> MemoryEngine:
    return make_faulty_engine(StaleUpsertConnection, threshold)


@pytest.fixture
def engine():
    return MemoryEngine()


@pytest.fixture
def store_config():
    return StoreConfig(id="test")


@pytest.fixture
def handle(engine, store_config):
    return DatabaseHandle(engine=engine, config=store_config)


@pytest.fixture
def conn(handle):
    with handle.session() as connection:
        yield connection


@pytest.fixture
def schema_conn(conn):
    """A connection with the tracked attribute plus two bloat attributes installed."""
    conn.transact(schema_tx_data(2))
    return conn


@pytest.fixture
def stale_engine():
    return make_stale_engine(threshold=3)


@pytest.fixture
def stale_handle(stale_engine, store_config):
    return DatabaseHandle(engine=stale_engine, config=store_config)


@pytest.fixture
def stale_engine_factory():
    return make_stale_engine


@pytest.fixture(autouse=True)
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def lost_write_engine():
    return make_faulty_engine(LostWriteConnection, threshold=3)


@pytest.fixture
def lost_write_handle(lost_write_engine, store_config):
    return DatabaseHandle(engine=lost_write_engine, config=store_config)
