"""Engine contract shared by the store backends.

A backend supplies storage primitives (read the current values of one
entity/attribute pair, append datoms, persist the counters, produce the full
history). Transaction resolution lives here once so every backend upserts the
same way:

* maps allocate a single new tx id per call and a new entity id when they carry
  no ``db/id``;
* a cardinality-one upsert retracts the current value and asserts the new one,
  re-asserting the current value is a no-op;
* ``Datom`` items are history: they keep their own tx id, advance ``max_eid``
  and leave the transaction counter alone.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from ..config import StoreConfig
from ..model import (
    BUILTIN_ATTRIBUTES,
    CARDINALITY_ONE,
    Datom,
    SchemaAttribute,
    TxReport,
    Value,
    add_value,
    drop_value,
    has_value,
    value_matches,
    value_sort_key,
)

LOG = logging.getLogger(__name__)

TxItem = Union[Mapping[str, object], Datom]

INDEXES = {
    "eavt": lambda d: (d.e, d.a, value_sort_key(d.v), d.tx),
    "aevt": lambda d: (d.a, d.e, value_sort_key(d.v), d.tx),
    "avet": lambda d: (d.a, value_sort_key(d.v), d.e, d.tx),
}


class EngineError(Exception):
    """Base class for store failures."""


class DatabaseExistsError(EngineError):
    pass


class DatabaseNotFoundError(EngineError):
    pass


class ConnectionReleasedError(EngineError):
    pass


class SchemaError(EngineError):
    """Unknown attribute or a value that does not match its declared type."""


def fold_history(history: Iterable[Datom]) -> Dict[int, Dict[str, List[Value]]]:
    """Replay ``history`` in transaction order and return the current values per entity."""

    state: Dict[int, Dict[str, List[Value]]] = defaultdict(dict)
    # sorted() is stable, so datoms sharing a tx keep their stored order
    for datom in sorted(history, key=lambda d: d.tx):
        values = state[datom.e].setdefault(datom.a, [])
        if datom.added:
            add_value(values, datom.v)
        else:
            drop_value(values, datom.v)
    return {
        e: {a: vals for a, vals in attrs.items() if vals}
        for e, attrs in state.items()
        if any(attrs.values())
    }


def schema_from_state(state: Mapping[int, Mapping[str, List[Value]]]) -> Dict[str, SchemaAttribute]:
    schema: Dict[str, SchemaAttribute] = {}
    for attrs in state.values():
        idents = attrs.get("db/ident")
        if not idents:
            continue
        ident = str(idents[0])
        value_type = attrs.get("db/valueType", ["db.type/string"])[0]
        cardinality = attrs.get("db/cardinality", [CARDINALITY_ONE])[0]
        indexed = bool(attrs.get("db/index", [False])[0])
        schema[ident] = SchemaAttribute(ident, str(value_type), str(cardinality), indexed)
    return schema


class Database:
    """Immutable snapshot of a store: its full history plus the counters."""

    def __init__(
        self,
        history: Sequence[Datom],
        max_tx: int,
        max_eid: int,
        keep_history: bool = True,
    ) -> None:
        self._history = tuple(history)
        self.max_tx = max_tx
        self.max_eid = max_eid
        self.keep_history = keep_history
        self._state: Optional[Dict[int, Dict[str, List[Value]]]] = None

    @property
    def state(self) -> Dict[int, Dict[str, List[Value]]]:
        if self._state is None:
            self._state = fold_history(self._history)
        return self._state

    def schema(self) -> Dict[str, SchemaAttribute]:
        return schema_from_state(self.state)

    def current_datoms(self) -> List[Datom]:
        latest: Dict[Tuple[int, str, Tuple[str, Value]], Datom] = {}
        for datom in sorted(self._history, key=lambda d: d.tx):
            latest[(datom.e, datom.a, value_sort_key(datom.v))] = datom
        return [d for d in latest.values() if d.added]

    def datoms(self, index: str = "eavt") -> List[Datom]:
        """Return the datoms of ``index`` order; full history unless history is off."""

        try:
            key = INDEXES[index]
        except KeyError:
            raise ValueError(f"unknown index {index!r} (expected one of {sorted(INDEXES)})") from None
        source = self._history if self.keep_history else self.current_datoms()
        return sorted(source, key=key)

    def pull(self, eid: int) -> Optional[Dict[str, object]]:
        attrs = self.state.get(eid)
        if not attrs:
            return None
        schema = self.schema()
        result: Dict[str, object] = {"db/id": eid}
        for attribute, values in attrs.items():
            definition = schema.get(attribute) or BUILTIN_ATTRIBUTES.get(attribute)
            if definition is not None and definition.many:
                result[attribute] = list(values)
            else:
                result[attribute] = values[-1]
        return result

    def __len__(self) -> int:
        return len(self._history)


class Connection:
    """One live connection to a store; subclasses provide the storage primitives."""

    def __init__(self, config: StoreConfig) -> None:
        self.config = config
        self._released = False
        self._schema_cache: Optional[Dict[str, SchemaAttribute]] = None

    # -- storage primitives -------------------------------------------------

    def _current_values(self, e: int, a: str) -> List[Value]:
        raise NotImplementedError

    def _commit(self, datoms: Sequence[Datom], max_tx: int, max_eid: int) -> None:
        raise NotImplementedError

    def _history(self) -> List[Datom]:
        raise NotImplementedError

    def _counters(self) -> Tuple[int, int]:
        raise NotImplementedError

    def _store_max_tx(self, tx: int) -> None:
        raise NotImplementedError

    def _close(self) -> None:
        pass

    # -- public API ----------------------------------------------------------

    @property
    def released(self) -> bool:
        return self._released

    @property
    def max_tx(self) -> int:
        self._check_open()
        return self._counters()[0]

    def set_max_tx(self, tx: int) -> None:
        self._check_open()
        if isinstance(tx, bool) or not isinstance(tx, int) or tx < 1:
            raise ValueError(f"max tx must be a positive int (got {tx!r})")
        self._store_max_tx(tx)
        LOG.debug("max-tx of %s set to %d", self.config.id, tx)

    def db(self) -> Database:
        self._check_open()
        max_tx, max_eid = self._counters()
        return Database(self._history(), max_tx, max_eid, self.config.keep_history)

    def schema(self) -> Dict[str, SchemaAttribute]:
        if self._schema_cache is None:
            self._schema_cache = self.db().schema()
        return self._schema_cache

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._close()

    def transact(self, tx_data: Iterable[TxItem]) -> TxReport:
        self._check_open()
        items = list(tx_data)
        max_tx, max_eid = self._counters()
        history = [item for item in items if isinstance(item, Datom)]
        maps = [item for item in items if not isinstance(item, Datom)]
        for item in maps:
            if not isinstance(item, Mapping):
                raise TypeError(f"tx_data items must be maps or Datom records (got {type(item).__name__})")

        if history:
            max_eid = max(max_eid, max(d.e for d in history))

        new_datoms: List[Datom] = []
        entity_ids: List[int] = []
        tx: Optional[int] = None
        if maps:
            tx = max_tx + 1
            pending: Dict[Tuple[int, str], List[Value]] = {}
            for item in maps:
                eid = item.get("db/id")
                if eid is None:
                    max_eid += 1
                    eid = max_eid
                elif isinstance(eid, bool) or not isinstance(eid, int) or eid < 1:
                    raise SchemaError(f"db/id must be a positive int (got {eid!r})")
                else:
                    max_eid = max(max_eid, eid)
                entity_ids.append(eid)
                for attribute, value in item.items():
                    if attribute == "db/id":
                        continue
                    new_datoms.extend(self._assert(eid, attribute, value, tx, pending))
            max_tx = tx

        self._commit(history + new_datoms, max_tx, max_eid)
        if any(d.a.startswith("db/") for d in history + new_datoms):
            self._schema_cache = None
        return TxReport(tx=tx, tx_data=tuple(history + new_datoms), entity_ids=tuple(entity_ids))

    # -- helpers -------------------------------------------------------------

    def _check_open(self) -> None:
        if self._released:
            raise ConnectionReleasedError(f"connection to {self.config.id} has been released")

    def _attribute(self, attribute: str) -> Optional[SchemaAttribute]:
        if attribute in BUILTIN_ATTRIBUTES:
            return BUILTIN_ATTRIBUTES[attribute]
        definition = self.schema().get(attribute)
        if definition is None and self.config.schema_flexibility == "write":
            raise SchemaError(f"attribute {attribute!r} is not installed")
        return definition

    def _assert(
        self,
        eid: int,
        attribute: str,
        value: object,
        tx: int,
        pending: Dict[Tuple[int, str], List[Value]],
    ) -> List[Datom]:
        definition = self._attribute(attribute)
        if definition is not None and not value_matches(definition.value_type, value):
            raise SchemaError(
                f"value {value!r} does not match {definition.value_type} for {attribute}"
            )
        key = (eid, attribute)
        if key not in pending:
            pending[key] = list(self._current_values(eid, attribute))
        current = pending[key]
        if has_value(current, value):
            return []
        out: List[Datom] = []
        if definition is None or not definition.many:
            for old in current:
                out.append(Datom(eid, attribute, old, tx, False))
            current.clear()
        out.append(Datom(eid, attribute, value, tx, True))  # type: ignore[arg-type]
        current.append(value)  # type: ignore[arg-type]
        return out


class Engine:
    """Creates, deletes and opens databases for one kind of store."""

    name = "abstract"

    def database_exists(self, config: StoreConfig) -> bool:
        raise NotImplementedError

    def create_database(self, config: StoreConfig) -> None:
        raise NotImplementedError

    def delete_database(self, config: StoreConfig) -> None:
        raise NotImplementedError

    def connect(self, config: StoreConfig) -> Connection:
        raise NotImplementedError
