"""Connection resolution plus the driver types bundled with cannery."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
from typing import Any, Coroutine, Mapping, Sequence

import asyncpg

from .errors import ClassLoadError, ConfigurationError, DriverConnectionError
from .resolver import TypeRef, describe, load_type

LOG = logging.getLogger(__name__)

_ROW_STATEMENTS = {"select", "with", "show", "values", "pragma", "explain"}


class SqliteConnection:
    """Driver wrapping a sqlite3 connection.

    Recognised params: ``database`` (defaults to an in-memory database) and
    ``domain``, a free-form label kept for diagnostics.
    """

    def __init__(self, params: Mapping[str, Any]) -> None:
        self.params = params
        self.domain = params.get("domain")
        self._conn = sqlite3.connect(params.get("database", ":memory:"), check_same_thread=False)
        self._lock = threading.Lock()

    def execute(self, sql: str, params: Sequence[Any] = ()) -> list[tuple[Any, ...]]:
        with self._lock:
            cursor = self._conn.execute(sql, tuple(params))
            rows = cursor.fetchall()
            self._conn.commit()
        return rows

    def close(self) -> None:
        self._conn.close()

    def __repr__(self) -> str:
        return f"SqliteConnection(domain={self.domain!r})"


class AsyncpgConnection:
    """Blocking facade over an asyncpg connection running on a private loop."""

    def __init__(self, params: Mapping[str, Any], *, connect_timeout: float = 5.0) -> None:
        self.params = params
        kwargs = {key: value for key, value in params.items() if key not in {"type", "domain"}}
        kwargs.setdefault("timeout", connect_timeout)
        self._loop = asyncio.new_event_loop()
        self._loop_thread = threading.Thread(
            target=self._loop.run_forever,
            name="cannery-asyncpg",
            daemon=True,
        )
        self._loop_thread.start()
        try:
            self._conn = self._run(asyncpg.connect(**kwargs))
        except Exception:
            self._stop_loop()
            raise

    def execute(self, sql: str, params: Sequence[Any] = ()) -> Any:
        return self._run(self._execute(sql, tuple(params)))

    def close(self) -> None:
        try:
            self._run(self._conn.close())
        finally:
            self._stop_loop()

    async def _execute(self, sql: str, params: tuple[Any, ...]) -> Any:
        if _returns_rows(sql):
            records = await self._conn.fetch(sql, *params)
            return [tuple(record.values()) for record in records]
        return await self._conn.execute(sql, *params)

    def _run(self, coro: Coroutine[Any, Any, Any]) -> Any:
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result()

    def _stop_loop(self) -> None:
        if not self._loop.is_running():  # pragma: no cover - defensive
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._loop_thread.join(timeout=1)


DRIVERS: Mapping[str, type] = {
    "sqlite": SqliteConnection,
    "postgres": AsyncpgConnection,
    "postgresql": AsyncpgConnection,
}


def driver_for(params: Mapping[str, Any]) -> type:
    """Pick a bundled driver from the ``type`` entry of driver params."""

    kind = params.get("type")
    if not isinstance(kind, str):
        raise ConfigurationError("Driver params need a 'type' when no driver type is given.")
    try:
        return DRIVERS[kind.lower()]
    except KeyError:
        known = ", ".join(sorted(DRIVERS))
        raise ConfigurationError(f"Unknown driver type '{kind}' (known: {known}).") from None


class ConnectionProvider:
    """Resolves the single connection handle a cannery uses."""

    def resolve(
        self,
        handle: Any | None = None,
        driver_type: TypeRef | None = None,
        driver_params: Mapping[str, Any] | None = None,
    ) -> Any:
        driver_mode = driver_type is not None or driver_params is not None
        if handle is not None and driver_mode:
            raise ConfigurationError("Supply either a connection handle or driver settings, not both.")
        if handle is not None:
            return handle
        if not driver_mode:
            raise ConfigurationError("Supply a connection handle or driver settings.")
        if driver_params is None:
            raise ConfigurationError(f"Driver '{describe(driver_type)}' was given without params.")  # type: ignore[arg-type]

        if driver_type is None:
            driver = driver_for(driver_params)
        else:
            try:
                driver = load_type(driver_type)
            except ClassLoadError as exc:
                raise ConfigurationError(str(exc)) from exc
        try:
            connection = driver(driver_params)
        except Exception as exc:
            LOG.warning("Connection driver failed", extra={"driver": describe(driver)})
            raise DriverConnectionError(driver, f"Driver '{describe(driver)}' failed to connect: {exc}") from exc
        LOG.info("Connected", extra={"driver": describe(driver)})
        return connection


def _returns_rows(statement: str) -> bool:
    token = statement.lstrip().split(None, 1)
    if not token:
        return False
    return token[0].lower() in _ROW_STATEMENTS


__all__ = [
    "AsyncpgConnection",
    "ConnectionProvider",
    "DRIVERS",
    "SqliteConnection",
    "driver_for",
]
