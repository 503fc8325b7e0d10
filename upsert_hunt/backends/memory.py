"""In-process store, the ``mem`` backend.

Stores live in a process-wide registry keyed by store id, so two connections to
the same id see the same data and a store outlives its connections until it is
deleted.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from ..config import StoreConfig
from ..model import TX0, Datom, Value, add_value, drop_value
from .base import (
    Connection,
    DatabaseExistsError,
    DatabaseNotFoundError,
    Engine,
    fold_history,
)

LOG = logging.getLogger(__name__)


@dataclass
class MemoryStore:
    history: List[Datom] = field(default_factory=list)
    max_tx: int = TX0
    max_eid: int = 0
    current: Dict[int, Dict[str, List[Value]]] = field(default_factory=dict)
    # highest tx in history; loads can run ahead of or behind max_tx
    last_tx: int = 0

    def apply(self, datoms: Sequence[Datom]) -> None:
        txs = [self.last_tx] + [d.tx for d in datoms]
        in_order = all(a <= b for a, b in zip(txs, txs[1:]))
        self.history.extend(datoms)
        self.last_tx = max(txs)
        if in_order:
            for datom in datoms:
                values = self.current.setdefault(datom.e, {}).setdefault(datom.a, [])
                if datom.added:
                    add_value(values, datom.v)
                else:
                    drop_value(values, datom.v)
        else:
            # History loaded out of transaction order, so refold everything.
            self.current = fold_history(self.history)


class MemoryConnection(Connection):
    def __init__(self, config: StoreConfig, store: MemoryStore) -> None:
        super().__init__(config)
        self._store = store

    def _current_values(self, e: int, a: str) -> List[Value]:
        return list(self._store.current.get(e, {}).get(a, []))

    def _commit(self, datoms: Sequence[Datom], max_tx: int, max_eid: int) -> None:
        if datoms:
            self._store.apply(datoms)
        self._store.max_tx = max_tx
        self._store.max_eid = max_eid

    def _history(self) -> List[Datom]:
        return list(self._store.history)

    def _counters(self) -> Tuple[int, int]:
        return self._store.max_tx, self._store.max_eid

    def _store_max_tx(self, tx: int) -> None:
        self._store.max_tx = tx


class MemoryEngine(Engine):
    name = "mem"
    connection_class = MemoryConnection

    def __init__(self) -> None:
        self._stores: Dict[str, MemoryStore] = {}

    def database_exists(self, config: StoreConfig) -> bool:
        return config.id in self._stores

    def create_database(self, config: StoreConfig) -> None:
        if config.id in self._stores:
            raise DatabaseExistsError(f"database {config.id!r} already exists")
        self._stores[config.id] = MemoryStore()
        LOG.debug("created mem store %s", config.id)

    def delete_database(self, config: StoreConfig) -> None:
        if self._stores.pop(config.id, None) is not None:
            LOG.debug("deleted mem store %s", config.id)

    def connect(self, config: StoreConfig) -> Connection:
        store = self._stores.get(config.id)
        if store is None:
            raise DatabaseNotFoundError(f"database {config.id!r} does not exist")
        return self.connection_class(config, store)
