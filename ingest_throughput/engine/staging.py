"""
Staged CSV artifacts: writing them in stage 1 and deleting them after stage 2.

The file layout is a header row with the table's column names followed by one
RFC 4180 row per record, matching the column list the bulk loader sends with
`COPY ... FROM STDIN WITH (FORMAT csv, HEADER true)`.
"""

from __future__ import annotations

import csv
import os
from pathlib import Path
from types import TracebackType
from typing import IO, Iterable, Optional, Type

from ingest_throughput.domain.models import Record
from ingest_throughput.errors import GenerationFailure
from ingest_throughput.utils.logging import get_logger

log = get_logger(__name__)

CSV_HEADERS = Record.column_names()


def artifact_path(
    staging_dir: Path | str, worker_id: int, connection_id: int, created_ms: int
) -> Path:
    """Path unique per (worker, connection, creation timestamp)."""
    return Path(staging_dir) / f"worker_{worker_id}_conn_{connection_id}_{created_ms}.csv"


class StagingWriter:
    """
    Append-only writer for one artifact.

    Use as a context manager; leaving the block without `finalize()` closes
    the handle so a partial file can still be deleted.
    """

    def __init__(self, path: Path, handle: IO[str]) -> None:
        self.path = path
        self._handle = handle
        self._writer = csv.writer(handle, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
        self.rows_written = 0

    @classmethod
    def create(cls, path: Path | str) -> "StagingWriter":
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            handle = path.open("w", newline="", encoding="utf-8")
        except OSError as exc:
            raise GenerationFailure(f"Cannot create artifact {path}: {exc}") from exc
        writer = cls(path, handle)
        try:
            writer._writer.writerow(CSV_HEADERS)
        except BaseException:
            handle.close()
            raise
        return writer

    @property
    def closed(self) -> bool:
        return self._handle.closed

    def append(self, record: Record) -> None:
        self._writer.writerow(record.to_csv_row())
        self.rows_written += 1

    def finalize(self) -> int:
        """Flush, fsync, close; return the artifact size in bytes."""
        self._handle.flush()
        os.fsync(self._handle.fileno())
        self._handle.close()
        return self.path.stat().st_size

    def close(self) -> None:
        if not self._handle.closed:
            self._handle.close()

    def __enter__(self) -> "StagingWriter":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.close()


def cleanup_artifacts(paths: Iterable[Path | str]) -> int:
    """
    Delete staged artifacts, best-effort. Returns the number removed.

    Missing files are skipped; any other error is logged and the loop goes on.
    """
    removed = 0
    for raw in paths:
        if not raw:
            continue
        path = Path(raw)
        try:
            path.unlink()
            removed += 1
        except FileNotFoundError:
            continue
        except OSError as exc:
            log.warning(
                f"[CLEANUP] Failed to remove {path}",
                extra={"path": str(path), "error": str(exc)},
            )
    return removed


__all__ = ["CSV_HEADERS", "StagingWriter", "artifact_path", "cleanup_artifacts"]
