"""
Bulk loader: stream one staged CSV artifact into the target table with COPY.

The file is read in fixed-size binary chunks and written to the COPY stream
as it is read, so memory use is bounded by the chunk size, not the artifact.
Each call opens a dedicated connection and always releases it. A failed load
is reported, never retried here.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Optional

from psycopg import sql

from ingest_throughput.domain.models import LoadOutcome
from ingest_throughput.engine.staging import CSV_HEADERS
from ingest_throughput.errors import FailureKind, LoadFailure
from ingest_throughput.infrastructure.db_factory import Connector, column_list, table_identifier
from ingest_throughput.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_CHUNK_BYTES = 64 * 1024


def copy_statement(table: str) -> sql.Composed:
    return sql.SQL("COPY {table} ({columns}) FROM STDIN WITH (FORMAT csv, HEADER true)").format(
        table=table_identifier(table),
        columns=column_list(CSV_HEADERS),
    )


class BulkLoader:
    """
    Loads staged artifacts through a `Connector`'s dedicated connection.
    """

    def __init__(self, connector: Connector, chunk_bytes: int = DEFAULT_CHUNK_BYTES) -> None:
        if chunk_bytes <= 0:
            raise ValueError("chunk_bytes must be positive")
        self.connector = connector
        self.chunk_bytes = chunk_bytes

    def _stream(self, path: Path, table: str) -> Optional[int]:
        """Run the COPY; return the server-reported row count, if any."""
        with self.connector.dedicated_connection() as conn:
            with conn.cursor() as cur:
                with cur.copy(copy_statement(table)) as copy:
                    with path.open("rb") as f:
                        while True:
                            chunk = f.read(self.chunk_bytes)
                            if not chunk:
                                break
                            copy.write(chunk)
                rowcount = cur.rowcount
            conn.commit()
        if rowcount is None or rowcount < 0:
            return None
        return rowcount

    def load(
        self,
        artifact_path: Path | str,
        table: str,
        worker_id: int = 0,
        connection_id: int = 0,
        expected_rows: Optional[int] = None,
    ) -> LoadOutcome:
        path = Path(artifact_path)
        start = time.perf_counter()
        try:
            if not path.is_file():
                raise LoadFailure(f"Artifact not found: {path}")
            size_mb = path.stat().st_size / (1024 * 1024)
            rows = self._stream(path, table)
            if rows is None:
                rows = expected_rows or 0
        except Exception as exc:  # noqa: BLE001 - every load error becomes an outcome
            elapsed_ms = (time.perf_counter() - start) * 1000
            log.error(
                f"[COPY FAILED] worker={worker_id} conn={connection_id}",
                extra={"path": str(path), "error": str(exc)},
            )
            return LoadOutcome(
                worker_id=worker_id,
                connection_id=connection_id,
                file_path=str(path),
                records_inserted=0,
                data_size_mb=0.0,
                elapsed_ms=elapsed_ms,
                success=False,
                error=str(exc) or type(exc).__name__,
                error_kind=FailureKind.LOAD,
            )

        elapsed_ms = (time.perf_counter() - start) * 1000
        log.debug(
            f"[COPY] worker={worker_id} conn={connection_id} rows={rows}",
            extra={"path": str(path), "elapsed_ms": round(elapsed_ms, 1)},
        )
        return LoadOutcome(
            worker_id=worker_id,
            connection_id=connection_id,
            file_path=str(path),
            records_inserted=rows,
            data_size_mb=size_mb,
            elapsed_ms=elapsed_ms,
            success=True,
        )


__all__ = ["BulkLoader", "DEFAULT_CHUNK_BYTES", "copy_statement"]
