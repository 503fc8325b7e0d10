"""Harness configuration and logging setup.

Configuration lives in a small JSON file (``tc_config.json`` by default) that
maps onto the dataclasses below. Anything the file leaves out keeps its
default, so an empty file gives the in-memory store with id ``temp``.
"""
from __future__ import annotations

import json
import logging
import os
import re
import sys
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

DEFAULT_CONFIG_PATH = Path("tc_config.json")
DEFAULT_OUTPUT_PATH = "db-error"
DEFAULT_BATCH_SIZE = 1000
DEFAULT_BASE_VALUE = "Markus"
TRACKED_ATTRIBUTE = "name"

BACKENDS = ("mem", "mysql")
SCHEMA_FLEXIBILITY = ("write", "read")

ENV_PREFIX = "UPSERT_HUNT_"

_STORE_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,48}$")


class ConfigError(ValueError):
    """Raised when a configuration file or override is unusable."""


@dataclass(frozen=True)
class MySQLSettings:
    host: Optional[str] = "localhost"
    port: int = 3306
    user: str = "msandbox"
    password: Optional[str] = "msandbox"
    socket: Optional[str] = None
    schema_prefix: str = "upsert_hunt_"
    connect_timeout: Optional[int] = 10


@dataclass(frozen=True)
class StoreConfig:
    backend: str = "mem"
    id: str = "temp"
    keep_history: bool = True
    schema_flexibility: str = "write"
    mysql: MySQLSettings = field(default_factory=MySQLSettings)

    def __post_init__(self) -> None:
        if self.backend not in BACKENDS:
            raise ConfigError(f"Unknown store backend {self.backend!r} (expected one of {BACKENDS})")
        if self.schema_flexibility not in SCHEMA_FLEXIBILITY:
            raise ConfigError(
                f"schema_flexibility must be one of {SCHEMA_FLEXIBILITY} (got {self.schema_flexibility!r})"
            )
        if not _STORE_ID_RE.match(self.id):
            raise ConfigError(f"Store id {self.id!r} must match {_STORE_ID_RE.pattern}")

    def with_id(self, store_id: str) -> "StoreConfig":
        return replace(self, id=store_id)


@dataclass(frozen=True)
class HarnessConfig:
    store: StoreConfig = field(default_factory=StoreConfig)
    output_path: str = DEFAULT_OUTPUT_PATH
    import_batch_size: int = DEFAULT_BATCH_SIZE
    tracked_attribute: str = TRACKED_ATTRIBUTE
    base_value: str = DEFAULT_BASE_VALUE
    log_level: str = "INFO"
    log_file: Optional[str] = None

    def __post_init__(self) -> None:
        if self.import_batch_size < 1:
            raise ConfigError(f"import_batch_size must be >= 1 (got {self.import_batch_size})")
        if not self.base_value:
            raise ConfigError("base_value must be a non-empty string")


def _section(data: Mapping[str, object], key: str) -> Dict[str, object]:
    value = data.get(key, {})
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"Config key {key} must be an object.")
    return value


def _build(cls, values: Mapping[str, object], where: str):
    known = set(cls.__dataclass_fields__)
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigError(f"Unknown key(s) in {where}: {', '.join(unknown)}")
    try:
        return cls(**values)
    except TypeError as exc:
        raise ConfigError(f"Invalid {where}: {exc}") from exc


def config_from_dict(data: Mapping[str, object]) -> HarnessConfig:
    store_data = dict(_section(data, "store"))
    mysql = _build(MySQLSettings, _section(store_data, "mysql"), "store.mysql")
    store_data["mysql"] = mysql
    store = _build(StoreConfig, store_data, "store")
    top = {key: value for key, value in data.items() if key != "store"}
    top["store"] = store
    return _build(HarnessConfig, top, "config")


def load_config(path: Optional[str] = None) -> HarnessConfig:
    """Read ``path`` (or ``tc_config.json`` when present) into a HarnessConfig."""

    config_path = Path(path).expanduser() if path else DEFAULT_CONFIG_PATH
    if not config_path.exists():
        if path:
            raise ConfigError(f"Config file not found: {config_path}")
        return HarnessConfig()
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a JSON object")
    return config_from_dict(data)


# (env name, section, key, cast)
_ENV_KEYS: Tuple[Tuple[str, str, str, type], ...] = (
    ("STORE_BACKEND", "store", "backend", str),
    ("STORE_ID", "store", "id", str),
    ("MYSQL_HOST", "mysql", "host", str),
    ("MYSQL_PORT", "mysql", "port", int),
    ("MYSQL_USER", "mysql", "user", str),
    ("MYSQL_PASSWORD", "mysql", "password", str),
    ("MYSQL_SOCKET", "mysql", "socket", str),
    ("OUTPUT_PATH", "harness", "output_path", str),
    ("BATCH_SIZE", "harness", "import_batch_size", int),
)


def apply_env_overrides(
    config: HarnessConfig, environ: Optional[Mapping[str, str]] = None
) -> Tuple[HarnessConfig, List[str]]:
    """Return a copy of ``config`` with ``UPSERT_HUNT_*`` variables applied."""

    env = os.environ if environ is None else environ
    applied: List[str] = []
    changes: Dict[str, Dict[str, object]] = {"harness": {}, "store": {}, "mysql": {}}
    for suffix, section, key, cast in _ENV_KEYS:
        name = ENV_PREFIX + suffix
        raw = env.get(name)
        if raw in (None, ""):
            continue
        try:
            changes[section][key] = cast(raw)
        except ValueError as exc:
            raise ConfigError(f"{name}={raw!r} is not a valid {cast.__name__}") from exc
        applied.append(name)
    if not applied:
        return config, applied
    mysql = replace(config.store.mysql, **changes["mysql"])
    store = replace(config.store, mysql=mysql, **changes["store"])
    return replace(config, store=store, **changes["harness"]), applied


BACKEND_LOGGERS = ("upsert_hunt.backends",)


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> Optional[Path]:
    """Set up logging to stdout and, if requested, a file."""

    log_level = getattr(logging, level.upper(), logging.INFO)
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    log_path: Optional[Path] = None
    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(message)s",
        handlers=handlers,
        force=True,
    )
    # Big imports transact thousands of datoms; keep the store chatter out.
    for name in BACKEND_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    return log_path
