"""
Pytest configuration for the insert throughput benchmark.

Provides fixtures for:
- Engine settings tuned for fast, in-process unit tests
- An in-memory fake database implementing the `Connector` protocol
- Database connection management for integration tests
"""

from __future__ import annotations

import os
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Optional, Sequence

import psycopg
import pytest

from ingest_throughput.config import Settings

FAST_RECORD_BYTES = 2048
FAST_MAX_RECORD_BYTES = 4096


def _base_overrides(tmp_path: Path) -> Dict[str, Any]:
    return {
        "db_password": "secret",
        "min_workers": 1,
        "connections_per_worker": 1,
        "min_record_bytes": FAST_RECORD_BYTES,
        "max_record_bytes": FAST_MAX_RECORD_BYTES,
        "avg_record_bytes": FAST_MAX_RECORD_BYTES,
        "data_size_mb": 0.01,
        "batch_size": 2,
        "warmup_duration": 0.01,
        "test_duration": 0.05,
        "staging_dir": tmp_path / "staging",
        "results_dir": tmp_path / "results",
        "worker_executor": "thread",
        "copy_executor": "thread",
    }


@pytest.fixture
def make_settings(tmp_path: Path) -> Callable[..., Settings]:
    """
    Build `Settings` for engine tests: thread executors, tiny records, and
    staging/results directories under `tmp_path`. Keyword overrides win.
    """

    def _make(**overrides: Any) -> Settings:
        values = {**_base_overrides(tmp_path), **overrides}
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def engine_settings(make_settings: Callable[..., Settings]) -> Settings:
    return make_settings()


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start
        self._lock = threading.Lock()

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        with self._lock:
            self.now += seconds


class _FakeCopy:
    def __init__(self, cursor: "_FakeCursor") -> None:
        self._cursor = cursor
        self.chunks: List[bytes] = []

    def __enter__(self) -> "_FakeCopy":
        return self

    def __exit__(self, *exc: object) -> None:
        if exc[0] is None:
            self._cursor.finish(b"".join(self.chunks))

    def write(self, chunk: bytes) -> None:
        db = self._cursor.db
        if db.fail_copy_after_chunks is not None and len(self.chunks) >= db.fail_copy_after_chunks:
            raise OSError("server closed the connection unexpectedly")
        self.chunks.append(chunk)
        with db.lock:
            db.chunk_sizes.append(len(chunk))


class _FakeCursor:
    def __init__(self, db: "FakeDatabase") -> None:
        self.db = db
        self.rowcount = -1
        self.statements: List[Any] = []

    def __enter__(self) -> "_FakeCursor":
        return self

    def __exit__(self, *exc: object) -> None:
        return None

    def copy(self, statement: Any) -> _FakeCopy:
        self.statements.append(statement)
        return _FakeCopy(self)

    def finish(self, payload: bytes) -> None:
        db = self.db
        if db.report_rowcount:
            self.rowcount = max(payload.count(b"\n") - 1, 0)
        with db.lock:
            db.copied_payloads.append(payload)
        if db.clock is not None:
            db.clock.advance(db.copy_clock_advance)


class _FakeConnection:
    def __init__(self, db: "FakeDatabase") -> None:
        self.db = db
        self.closed = False
        self.commits = 0

    def cursor(self) -> _FakeCursor:
        return _FakeCursor(self.db)

    def commit(self) -> None:
        self.commits += 1


class FakeConnector:
    def __init__(self, db: "FakeDatabase") -> None:
        self.db = db
        self.closed = False

    def insert_batch(
        self, table: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]
    ) -> int:
        db = self.db
        with db.lock:
            db.insert_calls += 1
            call = db.insert_calls
        if db.fail_insert is not None and db.fail_insert(call):
            raise RuntimeError("insert rejected")
        with db.lock:
            db.inserted_rows += len(rows)
            db.insert_tables.add(table)
        return len(rows)

    def ping(self) -> None:
        with self.db.lock:
            self.db.pings += 1
        if self.db.fail_ping:
            raise OSError("connection refused")

    @contextmanager
    def dedicated_connection(self) -> Generator[_FakeConnection, None, None]:
        db = self.db
        with db.lock:
            db.copy_attempts += 1
            attempt = db.copy_attempts
        if attempt <= db.fail_first_connections:
            raise OSError("could not acquire connection")
        conn = _FakeConnection(db)
        db.connections.append(conn)
        with db.lock:
            db.in_flight += 1
            db.peak_in_flight = max(db.peak_in_flight, db.in_flight)
        try:
            if db.copy_delay:
                time.sleep(db.copy_delay)
            yield conn
        finally:
            conn.closed = True
            with db.lock:
                db.in_flight -= 1

    def close(self) -> None:
        self.closed = True


class FakeDatabase:
    """
    Shared state behind every `FakeConnector` the factory hands out.

    Knobs: `fail_ping`, `fail_insert(call_number) -> bool`,
    `fail_first_connections`, `fail_copy_after_chunks`, `copy_delay`,
    `report_rowcount`, and a `clock` advanced by `copy_clock_advance` per load.
    """

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.fail_ping = False
        self.fail_insert: Optional[Callable[[int], bool]] = None
        self.fail_first_connections = 0
        self.fail_copy_after_chunks: Optional[int] = None
        self.copy_delay = 0.0
        self.report_rowcount = True
        self.clock: Optional[FakeClock] = None
        self.copy_clock_advance = 0.0

        self.connectors: List[FakeConnector] = []
        self.connections: List[_FakeConnection] = []
        self.pings = 0
        self.insert_calls = 0
        self.inserted_rows = 0
        self.insert_tables: set = set()
        self.copy_attempts = 0
        self.copied_payloads: List[bytes] = []
        self.chunk_sizes: List[int] = []
        self.in_flight = 0
        self.peak_in_flight = 0

    def factory(self, settings: Settings) -> FakeConnector:
        connector = FakeConnector(self)
        with self.lock:
            self.connectors.append(connector)
        return connector


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings for integration tests.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "browseai"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def db_connection_available(test_settings: Settings) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_settings.dsn(), connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_settings: Settings, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped database connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_settings.dsn())
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="session")
def db_schema_initialized(db_connection: psycopg.Connection) -> bool:
    """
    Ensure the target table exists by running db/init.sql.
    """
    init_sql_path = Path(__file__).parent.parent / "db" / "init.sql"
    with db_connection.cursor() as cur:
        cur.execute(init_sql_path.read_text(encoding="utf-8"))
    db_connection.commit()
    return True


@pytest.fixture(scope="function")
def clean_target_table(
    db_connection: psycopg.Connection, db_schema_initialized: bool, test_settings: Settings
):
    """
    Empty the target table before and after each test function.
    """
    statement = f'TRUNCATE TABLE "{test_settings.target_table}";'
    with db_connection.cursor() as cur:
        cur.execute(statement)
    db_connection.commit()
    yield
    with db_connection.cursor() as cur:
        cur.execute(statement)
    db_connection.commit()
