"""MySQL-backed store, the ``mysql`` backend.

Each store id maps onto its own MySQL schema (``<schema_prefix><id>``) with two
tables: ``datoms`` holds the append-only history and ``meta`` holds the
``max_tx`` / ``max_eid`` counters. Values are stored as JSON text so a long
stays a long on the way back out.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Dict, List, Optional, Sequence, Tuple

import pymysql
from pymysql.cursors import DictCursor

from ..config import MySQLSettings, StoreConfig
from ..model import TX0, Datom, Value, add_value, drop_value
from .base import (
    Connection,
    DatabaseExistsError,
    DatabaseNotFoundError,
    Engine,
    EngineError,
)

LOG = logging.getLogger(__name__)

_SCHEMA_NAME_RE = re.compile(r"^[A-Za-z0-9_]{1,64}$")

DATOMS_DDL = (
    "CREATE TABLE `datoms` ("
    " `id` BIGINT UNSIGNED NOT NULL AUTO_INCREMENT,"
    " `e` BIGINT NOT NULL,"
    " `a` VARCHAR(255) NOT NULL,"
    " `v` TEXT NOT NULL,"
    " `tx` BIGINT NOT NULL,"
    " `added` TINYINT(1) NOT NULL,"
    " PRIMARY KEY (`id`),"
    " KEY `eavt` (`e`, `a`, `tx`)"
    ") ENGINE=InnoDB DEFAULT CHARSET=utf8mb4"
)

META_DDL = (
    "CREATE TABLE `meta` ("
    " `name` VARCHAR(32) NOT NULL,"
    " `value` BIGINT NOT NULL,"
    " PRIMARY KEY (`name`)"
    ") ENGINE=InnoDB DEFAULT CHARSET=utf8mb4"
)

INSERT_DATOM_SQL = "INSERT INTO `datoms` (`e`, `a`, `v`, `tx`, `added`) VALUES (%s, %s, %s, %s, %s)"
UPDATE_META_SQL = "UPDATE `meta` SET `value` = %s WHERE `name` = %s"


def schema_name(config: StoreConfig) -> str:
    name = (config.mysql.schema_prefix + config.id).replace("-", "_")
    if not _SCHEMA_NAME_RE.match(name):
        raise EngineError(f"store id {config.id!r} does not give a usable MySQL schema name ({name!r})")
    return name


def encode_value(value: Value) -> str:
    return json.dumps(value, ensure_ascii=False)


def decode_value(raw: str) -> Value:
    value = json.loads(raw)
    if not isinstance(value, (str, int, float, bool)):
        raise EngineError(f"stored value {raw!r} is not a scalar")
    return value


def connect_mysql(
    settings: MySQLSettings,
    database: Optional[str] = None,
    *,
    autocommit: bool = False,
) -> pymysql.connections.Connection:
    params: Dict[str, object] = {
        "user": settings.user,
        "password": settings.password or "",
        "charset": "utf8mb4",
        "autocommit": autocommit,
        "cursorclass": DictCursor,
    }
    if settings.connect_timeout is not None:
        params["connect_timeout"] = settings.connect_timeout
    if settings.socket:
        params["unix_socket"] = settings.socket
    else:
        params["host"] = settings.host
        params["port"] = settings.port
    conn = pymysql.connect(**params)
    if database:
        conn.select_db(database)
    return conn


def _row_to_datom(row: Dict[str, object]) -> Datom:
    return Datom(
        e=int(row["e"]),
        a=str(row["a"]),
        v=decode_value(str(row["v"])),
        tx=int(row["tx"]),
        added=bool(row["added"]),
    )


class MySQLConnection(Connection):
    def __init__(self, config: StoreConfig, conn: pymysql.connections.Connection) -> None:
        super().__init__(config)
        self._conn = conn

    def _current_values(self, e: int, a: str) -> List[Value]:
        with self._conn.cursor() as cur:
            cur.execute(
                "SELECT `v`, `added` FROM `datoms` WHERE `e` = %s AND `a` = %s ORDER BY `tx`, `id`",
                (e, a),
            )
            rows = cur.fetchall()
        values: List[Value] = []
        for row in rows:
            value = decode_value(str(row["v"]))
            if row["added"]:
                add_value(values, value)
            else:
                drop_value(values, value)
        return values

    def _commit(self, datoms: Sequence[Datom], max_tx: int, max_eid: int) -> None:
        try:
            with self._conn.cursor() as cur:
                if datoms:
                    cur.executemany(
                        INSERT_DATOM_SQL,
                        [(d.e, d.a, encode_value(d.v), d.tx, int(d.added)) for d in datoms],
                    )
                cur.execute(UPDATE_META_SQL, (max_tx, "max_tx"))
                cur.execute(UPDATE_META_SQL, (max_eid, "max_eid"))
            self._conn.commit()
        except pymysql.MySQLError as exc:
            self._conn.rollback()
            raise EngineError(f"commit to {self.config.id} failed: {exc}") from exc
        LOG.debug("committed %d datom(s) to %s (max_tx=%d)", len(datoms), self.config.id, max_tx)

    def _history(self) -> List[Datom]:
        with self._conn.cursor() as cur:
            cur.execute("SELECT `e`, `a`, `v`, `tx`, `added` FROM `datoms` ORDER BY `id`")
            return [_row_to_datom(row) for row in cur.fetchall()]

    def _counters(self) -> Tuple[int, int]:
        with self._conn.cursor() as cur:
            cur.execute("SELECT `name`, `value` FROM `meta`")
            rows = {row["name"]: int(row["value"]) for row in cur.fetchall()}
        try:
            return rows["max_tx"], rows["max_eid"]
        except KeyError as exc:
            raise EngineError(f"meta table of {self.config.id} is missing {exc}") from exc

    def _store_max_tx(self, tx: int) -> None:
        try:
            with self._conn.cursor() as cur:
                cur.execute(UPDATE_META_SQL, (tx, "max_tx"))
            self._conn.commit()
        except pymysql.MySQLError as exc:
            self._conn.rollback()
            raise EngineError(f"unable to set max-tx of {self.config.id}: {exc}") from exc

    def _close(self) -> None:
        self._conn.close()


class MySQLEngine(Engine):
    name = "mysql"

    def _server(self, config: StoreConfig) -> pymysql.connections.Connection:
        try:
            return connect_mysql(config.mysql, autocommit=True)
        except pymysql.MySQLError as exc:
            raise EngineError(f"unable to reach MySQL for {config.id}: {exc}") from exc

    def database_exists(self, config: StoreConfig) -> bool:
        conn = self._server(config)
        try:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT COUNT(*) AS cnt FROM information_schema.schemata WHERE schema_name = %s",
                    (schema_name(config),),
                )
                return bool(cur.fetchone()["cnt"])
        except pymysql.MySQLError as exc:
            raise EngineError(f"unable to look up {config.id}: {exc}") from exc
        finally:
            conn.close()

    def create_database(self, config: StoreConfig) -> None:
        name = schema_name(config)
        if self.database_exists(config):
            raise DatabaseExistsError(f"database {config.id!r} already exists as `{name}`")
        conn = self._server(config)
        try:
            with conn.cursor() as cur:
                cur.execute(
                    f"CREATE DATABASE `{name}` "
                    "DEFAULT CHARACTER SET utf8mb4 COLLATE utf8mb4_bin"
                )
                cur.execute(f"USE `{name}`")
                cur.execute(DATOMS_DDL)
                cur.execute(META_DDL)
                cur.execute(
                    "INSERT INTO `meta` (`name`, `value`) VALUES (%s, %s), (%s, %s)",
                    ("max_tx", TX0, "max_eid", 0),
                )
        except pymysql.MySQLError as exc:
            raise EngineError(f"unable to create `{name}`: {exc}") from exc
        finally:
            conn.close()
        LOG.info("created MySQL store `%s`", name)

    def delete_database(self, config: StoreConfig) -> None:
        name = schema_name(config)
        conn = self._server(config)
        try:
            with conn.cursor() as cur:
                cur.execute(f"DROP DATABASE IF EXISTS `{name}`")
        except pymysql.MySQLError as exc:
            raise EngineError(f"unable to drop `{name}`: {exc}") from exc
        finally:
            conn.close()
        LOG.info("dropped MySQL store `%s`", name)

    def connect(self, config: StoreConfig) -> Connection:
        if not self.database_exists(config):
            raise DatabaseNotFoundError(f"database {config.id!r} does not exist")
        try:
            conn = connect_mysql(config.mysql, schema_name(config))
        except pymysql.MySQLError as exc:
            raise EngineError(f"unable to connect to {config.id}: {exc}") from exc
        return MySQLConnection(config, conn)
