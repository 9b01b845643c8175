"""
Database connector for the insert throughput benchmark.

The engine only talks to the database through the `Connector` protocol:
parameterized batch insert, a connectivity ping, a dedicated low-level
connection for COPY streaming, and teardown. `PsycopgConnector` implements it
with psycopg 3; the shared pool is created lazily on the first batch insert so
copy-only workers never open one.

Connection establishment is retried with exponential backoff via tenacity.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Callable, Generator, Optional, Protocol, Sequence, runtime_checkable

import psycopg
from psycopg import Connection, sql
from psycopg_pool import ConnectionPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ingest_throughput.config import Settings
from ingest_throughput.utils.logging import get_logger

log = get_logger(__name__)

CONNECT_TIMEOUT_SECONDS = 10


@runtime_checkable
class Connector(Protocol):
    """Pooled database handle consumed by worker units."""

    def insert_batch(
        self, table: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]
    ) -> int:
        """Insert rows in one round of parameterized statements; return row count."""
        ...

    def ping(self) -> None:
        """Raise if the database is unreachable."""
        ...

    def dedicated_connection(self) -> Any:
        """Context manager yielding a connection owned by the caller until exit."""
        ...

    def close(self) -> None:
        ...


ConnectorFactory = Callable[[Settings], Connector]


def table_identifier(table: str) -> sql.Identifier:
    """Quote `schema.table` or `table` as an identifier."""
    return sql.Identifier(*table.split("."))


def column_list(columns: Sequence[str]) -> sql.Composed:
    return sql.SQL(", ").join(sql.Identifier(c) for c in columns)


def pool_bounds(connections_per_worker: int) -> tuple[int, int]:
    """Pool sizing: min(5, cpw) idle, max(20, 2*cpw) total."""
    return min(5, connections_per_worker), max(20, connections_per_worker * 2)


class PsycopgConnector:
    """
    psycopg-backed `Connector`. One instance per worker unit.
    """

    def __init__(self, settings: Settings) -> None:
        self._dsn = settings.dsn()
        self._min_size, self._max_size = pool_bounds(settings.connections_per_worker)
        self._pool: Optional[ConnectionPool] = None
        self._lock = threading.Lock()

    def _get_pool(self) -> ConnectionPool:
        with self._lock:
            if self._pool is None:
                self._pool = ConnectionPool(
                    conninfo=self._dsn,
                    min_size=self._min_size,
                    max_size=self._max_size,
                    timeout=CONNECT_TIMEOUT_SECONDS,
                    kwargs={"connect_timeout": CONNECT_TIMEOUT_SECONDS},
                    open=True,
                )
            return self._pool

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type((psycopg.OperationalError, psycopg.InterfaceError)),
        reraise=True,
    )
    def _connect(self) -> Connection:
        return psycopg.connect(self._dsn, connect_timeout=CONNECT_TIMEOUT_SECONDS)

    def insert_batch(
        self, table: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]
    ) -> int:
        if not rows:
            return 0
        statement = sql.SQL("INSERT INTO {table} ({columns}) VALUES ({values})").format(
            table=table_identifier(table),
            columns=column_list(columns),
            values=sql.SQL(", ").join(sql.Placeholder() * len(columns)),
        )
        with self._get_pool().connection() as conn:
            with conn.cursor() as cur:
                cur.executemany(statement, rows)
        return len(rows)

    def ping(self) -> None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()

    @contextmanager
    def dedicated_connection(self) -> Generator[Connection, None, None]:
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    def close(self) -> None:
        with self._lock:
            if self._pool is not None:
                try:
                    self._pool.close()
                except psycopg.Error as exc:
                    log.warning("Pool close failed", extra={"error": str(exc)})
                finally:
                    self._pool = None


def create_connector(settings: Settings) -> Connector:
    """Default connector factory; module-level so worker processes can unpickle it."""
    return PsycopgConnector(settings)


__all__ = [
    "Connector",
    "ConnectorFactory",
    "PsycopgConnector",
    "column_list",
    "create_connector",
    "pool_bounds",
    "table_identifier",
]
