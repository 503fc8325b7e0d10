"""Scoped ownership of one throwaway database."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Iterator, Optional

from .backends import Connection, Engine, EngineError, engine_for
from .config import StoreConfig


class SetupError(RuntimeError):
    """The environment could not provide a fresh database; not a finding."""


@dataclass(frozen=True)
class DatabaseHandle:
    """An engine plus the store config it manages.

    Handles are values: a parallel caller gives every run its own store id
    through :meth:`for_size` instead of sharing one name.
    """

    engine: Engine
    config: StoreConfig

    @classmethod
    def from_config(cls, config: StoreConfig, engine: Optional[Engine] = None) -> "DatabaseHandle":
        return cls(engine=engine or engine_for(config), config=config)

    def for_size(self, size: int) -> "DatabaseHandle":
        return replace(self, config=self.config.with_id(f"{self.config.id}-{size}"))

    def recreate(self) -> None:
        try:
            if self.engine.database_exists(self.config):
                self.engine.delete_database(self.config)
            self.engine.create_database(self.config)
        except EngineError as exc:
            raise SetupError(f"unable to create database {self.config.id!r}: {exc}") from exc

    def destroy(self) -> None:
        self.engine.delete_database(self.config)

    def connect(self) -> Connection:
        return self.engine.connect(self.config)

    @contextmanager
    def session(self) -> Iterator[Connection]:
        """Fresh database and connection; both are released on every exit path."""

        self.recreate()
        conn: Optional[Connection] = None
        try:
            try:
                conn = self.connect()
            except EngineError as exc:
                raise SetupError(f"unable to connect to {self.config.id!r}: {exc}") from exc
            yield conn
        except BaseException:
            self._teardown(conn, failing=True)
            raise
        self._teardown(conn)

    def _teardown(self, conn: Optional[Connection], failing: bool = False) -> None:
        try:
            if conn is not None:
                conn.release()
            self.destroy()
        except EngineError as exc:
            if failing:
                # the exception already in flight is the one to report
                logging.error("Unable to delete database %s after a failure: %s", self.config.id, exc)
                return
            raise SetupError(f"unable to delete database {self.config.id!r}: {exc}") from exc
        logging.debug("Database %s released and deleted", self.config.id)
