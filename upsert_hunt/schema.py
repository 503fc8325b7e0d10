"""Bloat schema generator.

The schema size is the search's independent variable: one tracked attribute
plus ``x`` filler attributes that only exist to make the database bigger.
"""
from __future__ import annotations

from typing import Dict, List

from .config import TRACKED_ATTRIBUTE
from .model import CARDINALITY_ONE, TYPE_STRING, SchemaAttribute


def filler_ident(index: int) -> str:
    return f"attribute{index}"


def big_schema(x: int, tracked: str = TRACKED_ATTRIBUTE) -> List[SchemaAttribute]:
    """Return the tracked attribute followed by ``x`` filler attributes."""

    if isinstance(x, bool) or not isinstance(x, int):
        raise TypeError(f"schema size must be an int (got {x!r})")
    if x < 0:
        raise ValueError(f"schema size must be >= 0 (got {x})")
    schema = [SchemaAttribute(tracked, TYPE_STRING, CARDINALITY_ONE, indexed=True)]
    schema.extend(
        SchemaAttribute(filler_ident(i), TYPE_STRING, CARDINALITY_ONE, indexed=True)
        for i in range(x)
    )
    return schema


def schema_tx_data(x: int, tracked: str = TRACKED_ATTRIBUTE) -> List[Dict[str, object]]:
    return [attribute.to_tx_map() for attribute in big_schema(x, tracked)]
