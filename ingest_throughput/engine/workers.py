"""
Worker units: the isolated execution contexts of the benchmark.

A task is a frozen, picklable description of one unit of work. Executing it
(`run_worker_unit`) produces exactly one typed outcome; no exception ever
escapes, so a failing unit cannot take down its siblings. Units share no
state: each opens its own connector and, in stage 1, its own file.

Stages:
- `generate`: Generator -> Staging Writer, `record_count` times.
- `copy`: one Bulk Loader call on a finalized artifact.
- `insert_loop`: warmup + measured wall-clock loops of batch inserts, or a
  fixed record budget when `record_budget` is set (streaming mode).
"""

from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import List, Optional, Union

from ingest_throughput.config import Settings
from ingest_throughput.domain.models import (
    GenerationOutcome,
    InsertLoopOutcome,
    LatencyMeasurement,
    LoadOutcome,
    Record,
)
from ingest_throughput.engine.generator import (
    calculate_data_size_mb,
    generate_batch,
    generate_record,
)
from ingest_throughput.engine.loader import BulkLoader
from ingest_throughput.engine.metrics import summarize_latencies
from ingest_throughput.engine.staging import StagingWriter, artifact_path
from ingest_throughput.errors import FailureKind
from ingest_throughput.infrastructure.db_factory import (
    Connector,
    ConnectorFactory,
    create_connector,
)
from ingest_throughput.utils.logging import get_logger

log = get_logger(__name__)

MAX_WORKER_ERRORS = 10
PROGRESS_EVERY_BATCHES = 50


@dataclass(frozen=True)
class GenerationTask:
    settings: Settings
    worker_id: int
    connection_id: int
    record_count: int
    file_path: Optional[str] = None
    seed: Optional[int] = None
    stage: str = "generate"


@dataclass(frozen=True)
class CopyTask:
    settings: Settings
    worker_id: int
    connection_id: int
    file_path: str
    expected_rows: Optional[int] = None
    connector_factory: ConnectorFactory = create_connector
    stage: str = "copy"


@dataclass(frozen=True)
class InsertLoopTask:
    settings: Settings
    worker_id: int
    connection_id: int
    batch_size: int
    record_budget: Optional[int] = None
    seed: Optional[int] = None
    connector_factory: ConnectorFactory = create_connector
    stage: str = "insert_loop"


WorkerTask = Union[GenerationTask, CopyTask, InsertLoopTask]
WorkerOutcome = Union[GenerationOutcome, LoadOutcome, InsertLoopOutcome]


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def run_generation(task: GenerationTask) -> GenerationOutcome:
    start = time.perf_counter()
    path = task.file_path or artifact_path(
        task.settings.staging_dir, task.worker_id, task.connection_id, int(time.time() * 1000)
    )
    rng = random.Random(task.seed)
    size_range = task.settings.record_size_range

    try:
        with StagingWriter.create(path) as writer:
            for _ in range(task.record_count):
                writer.append(generate_record(size_range, rng))
            size_bytes = writer.finalize()
            generated = writer.rows_written
    except Exception as exc:  # noqa: BLE001 - converted to a typed outcome
        log.error(
            f"[GENERATE FAILED] worker={task.worker_id} conn={task.connection_id}",
            extra={"path": str(path), "error": str(exc)},
        )
        return GenerationOutcome(
            worker_id=task.worker_id,
            connection_id=task.connection_id,
            file_path=str(path),
            records_generated=0,
            file_size_mb=0.0,
            elapsed_ms=_elapsed_ms(start),
            success=False,
            error=str(exc) or type(exc).__name__,
            error_kind=FailureKind.GENERATION,
        )

    return GenerationOutcome(
        worker_id=task.worker_id,
        connection_id=task.connection_id,
        file_path=str(path),
        records_generated=generated,
        file_size_mb=size_bytes / (1024 * 1024),
        elapsed_ms=_elapsed_ms(start),
        success=True,
    )


def run_copy(task: CopyTask) -> LoadOutcome:
    start = time.perf_counter()
    connector: Optional[Connector] = None
    try:
        connector = task.connector_factory(task.settings)
        loader = BulkLoader(connector, chunk_bytes=task.settings.copy_chunk_bytes)
        return loader.load(
            task.file_path,
            task.settings.target_table,
            worker_id=task.worker_id,
            connection_id=task.connection_id,
            expected_rows=task.expected_rows,
        )
    except Exception as exc:  # noqa: BLE001 - converted to a typed outcome
        return LoadOutcome(
            worker_id=task.worker_id,
            connection_id=task.connection_id,
            file_path=task.file_path,
            records_inserted=0,
            data_size_mb=0.0,
            elapsed_ms=_elapsed_ms(start),
            success=False,
            error=str(exc) or type(exc).__name__,
            error_kind=FailureKind.LOAD,
        )
    finally:
        if connector is not None:
            connector.close()


class _InsertLoop:
    """Per-unit loop state; lives only inside one worker."""

    def __init__(self, task: InsertLoopTask, connector: Connector) -> None:
        self.task = task
        self.connector = connector
        self.rng = random.Random(task.seed)
        self.size_range = task.settings.record_size_range
        self.table = task.settings.target_table
        self.columns = Record.column_names()
        self.measurements: List[LatencyMeasurement] = []
        self.errors: List[str] = []
        self.records_inserted = 0
        self.data_size_mb = 0.0

    def insert_once(self, count: int, record: bool = True) -> bool:
        batch = generate_batch(self.size_range, count, self.rng)
        batch_start = time.perf_counter()
        try:
            self.connector.insert_batch(self.table, self.columns, [r.to_db_row() for r in batch])
        except Exception as exc:  # noqa: BLE001 - failed batches are measured, not fatal
            batch_end = time.perf_counter()
            message = str(exc) or type(exc).__name__
            if record:
                self.measurements.append(
                    LatencyMeasurement(
                        batch_start, batch_end, (batch_end - batch_start) * 1000, False, message
                    )
                )
                self.errors.append(message)
            log.debug(
                f"[INSERT FAILED] worker={self.task.worker_id} conn={self.task.connection_id}",
                extra={"error": message},
            )
            return False

        batch_end = time.perf_counter()
        if record:
            self.measurements.append(
                LatencyMeasurement(batch_start, batch_end, (batch_end - batch_start) * 1000, True)
            )
            self.records_inserted += len(batch)
            self.data_size_mb += calculate_data_size_mb(batch)
        return True

    def run_for(self, seconds: float, record: bool) -> None:
        deadline = time.perf_counter() + seconds
        while time.perf_counter() < deadline:
            self.insert_once(self.task.batch_size, record=record)

    def run_budget(self, budget: int) -> None:
        done = 0
        batches = 0
        loop_start = time.perf_counter()
        while done < budget:
            count = min(self.task.batch_size, budget - done)
            self.insert_once(count)
            done += count
            batches += 1
            if batches % PROGRESS_EVERY_BATCHES == 0:
                elapsed = time.perf_counter() - loop_start
                log.info(
                    f"[WORKER {self.task.worker_id}:{self.task.connection_id}] "
                    f"{done}/{budget} ({done / budget * 100:.1f}%)",
                    extra={"records_per_sec": round(self.records_inserted / elapsed, 1)},
                )


def run_insert_loop(task: InsertLoopTask) -> InsertLoopOutcome:
    """
    Warmup batches are executed but not measured; only the measured phase
    contributes records, latencies, and errors.
    """
    start = time.perf_counter()
    connector: Optional[Connector] = None
    loop: Optional[_InsertLoop] = None
    fatal: Optional[str] = None
    try:
        connector = task.connector_factory(task.settings)
        loop = _InsertLoop(task, connector)
        if task.record_budget is not None:
            loop.run_budget(task.record_budget)
        else:
            loop.run_for(task.settings.warmup_duration, record=False)
            start = time.perf_counter()
            loop.run_for(task.settings.test_duration, record=True)
    except Exception as exc:  # noqa: BLE001 - converted to a typed outcome
        fatal = f"Worker {task.worker_id} fatal: {str(exc) or type(exc).__name__}"
        log.error(
            f"[WORKER FAILED] worker={task.worker_id} conn={task.connection_id}",
            extra={"error": str(exc)},
        )
    finally:
        if connector is not None:
            connector.close()

    duration = time.perf_counter() - start
    measurements = loop.measurements if loop else []
    errors = (loop.errors if loop else []) + ([fatal] if fatal else [])
    latencies = tuple(m.latency_ms for m in measurements)
    return InsertLoopOutcome(
        worker_id=task.worker_id,
        connection_id=task.connection_id,
        records_inserted=loop.records_inserted if loop else 0,
        data_size_mb=loop.data_size_mb if loop else 0.0,
        duration_seconds=duration,
        latency=summarize_latencies(latencies),
        latencies_ms=latencies,
        success_count=sum(1 for m in measurements if m.success),
        error_count=sum(1 for m in measurements if not m.success) + (1 if fatal else 0),
        errors=tuple(errors[:MAX_WORKER_ERRORS]),
    )


def run_worker_unit(task: WorkerTask) -> WorkerOutcome:
    """Executor entry point; dispatches on the task's stage."""
    if isinstance(task, GenerationTask):
        return run_generation(task)
    if isinstance(task, CopyTask):
        return run_copy(task)
    if isinstance(task, InsertLoopTask):
        return run_insert_loop(task)
    raise TypeError(f"Unknown worker task: {type(task).__name__}")


def failed_outcome_for(task: WorkerTask, message: str) -> WorkerOutcome:
    """
    Outcome for a unit whose executor future itself failed (e.g. a worker
    process died). Generation outcomes keep the assigned artifact path.
    """
    if isinstance(task, GenerationTask):
        return GenerationOutcome(
            worker_id=task.worker_id,
            connection_id=task.connection_id,
            file_path=task.file_path or "",
            records_generated=0,
            file_size_mb=0.0,
            elapsed_ms=0.0,
            success=False,
            error=message,
            error_kind=FailureKind.GENERATION,
        )
    if isinstance(task, CopyTask):
        return LoadOutcome(
            worker_id=task.worker_id,
            connection_id=task.connection_id,
            file_path=task.file_path,
            records_inserted=0,
            data_size_mb=0.0,
            elapsed_ms=0.0,
            success=False,
            error=message,
            error_kind=FailureKind.LOAD,
        )
    return InsertLoopOutcome(
        worker_id=task.worker_id,
        connection_id=task.connection_id,
        records_inserted=0,
        data_size_mb=0.0,
        duration_seconds=0.0,
        latency=summarize_latencies(()),
        error_count=1,
        errors=(message,),
    )


__all__ = [
    "CopyTask",
    "GenerationTask",
    "InsertLoopTask",
    "WorkerOutcome",
    "WorkerTask",
    "failed_outcome_for",
    "run_copy",
    "run_generation",
    "run_insert_loop",
    "run_worker_unit",
]
