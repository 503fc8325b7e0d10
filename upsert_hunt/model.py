"""Record types shared by the harness and the store backends."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

Value = Union[str, int, float, bool]

# Transaction ids start above this base, the first commit gets TX0 + 1.
TX0 = 0x20000000

CARDINALITY_ONE = "db.cardinality/one"
CARDINALITY_MANY = "db.cardinality/many"

TYPE_STRING = "db.type/string"
TYPE_KEYWORD = "db.type/keyword"
TYPE_LONG = "db.type/long"
TYPE_DOUBLE = "db.type/double"
TYPE_BOOLEAN = "db.type/boolean"
TYPE_REF = "db.type/ref"

VALUE_TYPES = (TYPE_STRING, TYPE_KEYWORD, TYPE_LONG, TYPE_DOUBLE, TYPE_BOOLEAN, TYPE_REF)
CARDINALITIES = (CARDINALITY_ONE, CARDINALITY_MANY)


@dataclass(frozen=True)
class Datom:
    e: int
    a: str
    v: Value
    tx: int
    added: bool = True

    def as_dict(self) -> Dict[str, object]:
        return {"e": self.e, "a": self.a, "v": self.v, "tx": self.tx, "added": self.added}


@dataclass(frozen=True)
class SchemaAttribute:
    ident: str
    value_type: str = TYPE_STRING
    cardinality: str = CARDINALITY_ONE
    indexed: bool = False

    def __post_init__(self) -> None:
        if not self.ident:
            raise ValueError("attribute ident must not be empty")
        if self.value_type not in VALUE_TYPES:
            raise ValueError(f"unknown value type {self.value_type!r} for {self.ident}")
        if self.cardinality not in CARDINALITIES:
            raise ValueError(f"unknown cardinality {self.cardinality!r} for {self.ident}")

    @property
    def many(self) -> bool:
        return self.cardinality == CARDINALITY_MANY

    def to_tx_map(self) -> Dict[str, object]:
        return {
            "db/ident": self.ident,
            "db/valueType": self.value_type,
            "db/cardinality": self.cardinality,
            "db/index": self.indexed,
        }


# Attributes every store understands without installing them.
BUILTIN_ATTRIBUTES: Dict[str, SchemaAttribute] = {
    attr.ident: attr
    for attr in (
        SchemaAttribute("db/ident", TYPE_KEYWORD, CARDINALITY_ONE, True),
        SchemaAttribute("db/valueType", TYPE_KEYWORD),
        SchemaAttribute("db/cardinality", TYPE_KEYWORD),
        SchemaAttribute("db/index", TYPE_BOOLEAN),
        SchemaAttribute("db/unique", TYPE_KEYWORD),
        SchemaAttribute("db/doc", TYPE_STRING),
    )
}


def value_matches(value_type: str, value: object) -> bool:
    if value_type in (TYPE_STRING, TYPE_KEYWORD):
        return isinstance(value, str)
    if value_type in (TYPE_LONG, TYPE_REF):
        return isinstance(value, int) and not isinstance(value, bool)
    if value_type == TYPE_DOUBLE:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if value_type == TYPE_BOOLEAN:
        return isinstance(value, bool)
    return False


def value_sort_key(value: Value) -> Tuple[str, Value]:
    """Order mixed-type values by type name first so sorting never compares str to int."""
    return (type(value).__name__, value)


# 1, 1.0 and True are equal in Python but distinct datom values.
def has_value(values: List[Value], value: Value) -> bool:
    key = value_sort_key(value)
    return any(value_sort_key(v) == key for v in values)


def add_value(values: List[Value], value: Value) -> None:
    if not has_value(values, value):
        values.append(value)


def drop_value(values: List[Value], value: Value) -> None:
    key = value_sort_key(value)
    values[:] = [v for v in values if value_sort_key(v) != key]


@dataclass(frozen=True)
class TxReport:
    tx: Optional[int] = None
    tx_data: Tuple[Datom, ...] = ()
    entity_ids: Tuple[int, ...] = field(default_factory=tuple)
