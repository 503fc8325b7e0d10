"""Store backends implementing the engine contract."""

from ..config import StoreConfig
from .base import (
    Connection,
    ConnectionReleasedError,
    Database,
    DatabaseExistsError,
    DatabaseNotFoundError,
    Engine,
    EngineError,
    SchemaError,
)
from .memory import MemoryEngine
from .mysql import MySQLEngine

# mem stores must survive between calls, so there is one engine per process.
MEMORY_ENGINE = MemoryEngine()


def engine_for(config: StoreConfig) -> Engine:
    if config.backend == "mem":
        return MEMORY_ENGINE
    if config.backend == "mysql":
        return MySQLEngine()
    raise EngineError(f"no engine for backend {config.backend!r}")


__all__ = [
    "Connection",
    "ConnectionReleasedError",
    "Database",
    "DatabaseExistsError",
    "DatabaseNotFoundError",
    "Engine",
    "EngineError",
    "MEMORY_ENGINE",
    "MemoryEngine",
    "MySQLEngine",
    "SchemaError",
    "engine_for",
]
