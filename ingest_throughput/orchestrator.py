"""
Orchestrator: choose the benchmark mode, run it, persist the result.

Usage (example from CLI):
    from ingest_throughput.orchestrator import run_benchmark

    result = run_benchmark(get_settings())
    print(result.throughput_mb_per_sec)

Mode precedence when not given explicitly: streaming, then two-stage
(high-throughput when flagged), then the insert loop. Results are saved to
`<results_dir>/aurora_benchmark_<timestamp>.json`.
"""

from __future__ import annotations

import math
import time
from pathlib import Path
from typing import Callable, List, Optional

from ingest_throughput.config import Settings
from ingest_throughput.domain.models import BenchmarkResult, InsertLoopOutcome
from ingest_throughput.engine.coordinator import (
    BYTES_PER_MB,
    make_executor,
    run_barrier,
    run_high_throughput,
    run_two_stage,
)
from ingest_throughput.engine.metrics import aggregate_insert_loop
from ingest_throughput.engine.workers import InsertLoopTask
from ingest_throughput.errors import ConnectivityFailure
from ingest_throughput.infrastructure.db_factory import ConnectorFactory, create_connector
from ingest_throughput.utils.logging import get_logger
from ingest_throughput.utils.profiler import profile_stage

log = get_logger(__name__)

MODES = ("insert_loop", "streaming", "two_stage", "high_throughput")


def resolve_mode(settings: Settings, override: Optional[str] = None) -> str:
    if override is not None:
        if override not in MODES:
            raise ValueError(f"Unknown mode '{override}'. Available: {', '.join(MODES)}")
        return override
    if settings.use_streaming:
        return "streaming"
    if settings.use_two_stage:
        return "high_throughput" if settings.use_high_throughput else "two_stage"
    return "insert_loop"


def check_connectivity(
    settings: Settings,
    connector_factory: ConnectorFactory = create_connector,
) -> None:
    """Run `SELECT 1` once; any failure is fatal for the run."""
    connector = connector_factory(settings)
    try:
        connector.ping()
    except Exception as exc:
        raise ConnectivityFailure(f"Database connectivity check failed: {exc}") from exc
    finally:
        connector.close()
    log.info("[CONNECTIVITY] Database reachable", extra={"host": settings.db_host})


def _insert_loop_tasks(
    settings: Settings,
    connector_factory: ConnectorFactory,
    batch_size: int,
    record_budget: Optional[int] = None,
) -> List[InsertLoopTask]:
    return [
        InsertLoopTask(
            settings=settings,
            worker_id=worker_id,
            connection_id=connection_id,
            batch_size=batch_size,
            record_budget=record_budget,
            connector_factory=connector_factory,
        )
        for worker_id in range(settings.min_workers)
        for connection_id in range(settings.connections_per_worker)
    ]


def _run_insert_units(settings: Settings, tasks: List[InsertLoopTask]) -> List[InsertLoopOutcome]:
    executor = make_executor(settings.worker_executor, len(tasks))
    try:
        outcomes = run_barrier(executor, tasks)
    finally:
        executor.shutdown(wait=True)
    return [o for o in outcomes if isinstance(o, InsertLoopOutcome)]


def run_insert_loop_benchmark(
    settings: Settings,
    connector_factory: ConnectorFactory = create_connector,
) -> BenchmarkResult:
    """
    Every unit runs `warmup_duration` unmeasured, then `test_duration`
    measured seconds of batch inserts. Throughput uses `test_duration`.
    """
    tasks = _insert_loop_tasks(settings, connector_factory, settings.batch_size)
    log.info(
        "[INSERT LOOP] Starting",
        extra={
            "workers": settings.min_workers,
            "connections": len(tasks),
            "batch_size": settings.batch_size,
            "warmup_seconds": settings.warmup_duration,
            "test_seconds": settings.test_duration,
        },
    )
    with profile_stage("insert_loop") as stats:
        outcomes = _run_insert_units(settings, tasks)
    log.info("[INSERT LOOP COMPLETE]", extra=stats.as_log_fields())

    return aggregate_insert_loop(
        outcomes,
        settings.test_duration,
        workers=settings.min_workers,
        connections_per_worker=settings.connections_per_worker,
        batch_size=settings.batch_size,
        max_errors=settings.max_reported_errors,
    )


def run_streaming_benchmark(
    settings: Settings,
    connector_factory: ConnectorFactory = create_connector,
    clock: Callable[[], float] = time.perf_counter,
) -> BenchmarkResult:
    """
    Split the data volume into a fixed record budget per connection and
    insert it in `streaming_batch_size` batches. Throughput uses the overall
    wall-clock time.
    """
    total_connections = settings.total_connections
    total_records = math.floor(settings.data_size_mb * BYTES_PER_MB / settings.avg_record_bytes)
    per_connection = total_records // total_connections

    connector = connector_factory(settings)
    try:
        for index in range(total_connections):
            try:
                connector.ping()
            except Exception as exc:
                raise ConnectivityFailure(f"Connection {index} failed ping: {exc}") from exc
    finally:
        connector.close()
    log.info(
        f"[STREAMING] {total_connections} connections verified",
        extra={"records_per_connection": per_connection, "total_records": total_records},
    )

    tasks = _insert_loop_tasks(
        settings, connector_factory, settings.streaming_batch_size, record_budget=per_connection
    )
    start = clock()
    with profile_stage("streaming") as stats:
        outcomes = _run_insert_units(settings, tasks)
    elapsed = clock() - start
    log.info("[STREAMING COMPLETE]", extra=stats.as_log_fields())

    return aggregate_insert_loop(
        outcomes,
        elapsed,
        workers=settings.min_workers,
        connections_per_worker=settings.connections_per_worker,
        batch_size=settings.streaming_batch_size,
        max_errors=settings.max_reported_errors,
        mode="streaming",
    )


def result_filename(result: BenchmarkResult) -> str:
    stamp = result.timestamp.replace(":", "-").replace(".", "-")
    return f"aurora_benchmark_{stamp}.json"


def persist_result(result: BenchmarkResult, results_dir: Path | str) -> Path:
    directory = Path(results_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / result_filename(result)
    with path.open("w", encoding="utf-8") as f:
        f.write(result.model_dump_json(indent=2))
    log.info("Results persisted", extra={"path": str(path)})
    return path


def run_benchmark(
    settings: Settings,
    connector_factory: ConnectorFactory = create_connector,
    mode: Optional[str] = None,
    persist: bool = True,
    results_dir: Optional[Path | str] = None,
) -> BenchmarkResult:
    """
    Verify connectivity, run the selected mode, optionally persist.

    Raises
    ------
    ConnectivityFailure
        The initial `SELECT 1` failed.
    FatalFailure
        A two-stage run produced no artifacts to load.
    """
    selected = resolve_mode(settings, mode)
    log.info(f"{'=' * 60}")
    log.info(
        f"[BENCHMARK] {selected.upper()}",
        extra={
            "mode": selected,
            "workers": settings.min_workers,
            "connections_per_worker": settings.connections_per_worker,
            "data_size_mb": settings.data_size_mb,
        },
    )
    log.info(f"{'=' * 60}")

    check_connectivity(settings, connector_factory)

    if selected == "streaming":
        result = run_streaming_benchmark(settings, connector_factory)
    elif selected == "high_throughput":
        result = run_high_throughput(settings, connector_factory)
    elif selected == "two_stage":
        result = run_two_stage(settings, connector_factory)
    else:
        result = run_insert_loop_benchmark(settings, connector_factory)

    if persist:
        persist_result(result, results_dir or settings.results_dir)

    log.info(
        f"[BENCHMARK COMPLETE] {selected}",
        extra={
            "mb_per_sec": round(result.throughput_mb_per_sec, 2),
            "records_per_sec": round(result.throughput_records_per_sec, 1),
            "success_rate": round(result.success_rate, 3),
        },
    )
    return result


__all__ = [
    "MODES",
    "check_connectivity",
    "persist_result",
    "resolve_mode",
    "result_filename",
    "run_benchmark",
    "run_insert_loop_benchmark",
    "run_streaming_benchmark",
]
