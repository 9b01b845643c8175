"""
Reduction of worker outcomes into a `BenchmarkResult`.

Percentiles everywhere use the same convention: sort a copy of the values and
take `values[floor(n * p)]`, clamped to the last index. An empty set yields
zeros rather than an error so a run with no successful operations still
produces a result.
"""

from __future__ import annotations

import math
from typing import Iterable, List, Optional, Sequence

from ingest_throughput.domain.models import (
    BenchmarkResult,
    GenerationOutcome,
    InsertLoopOutcome,
    LatencySummary,
    LoadOutcome,
)

DEFAULT_MAX_ERRORS = 10


def percentile(sorted_values: Sequence[float], p: float) -> float:
    if not sorted_values:
        return 0.0
    index = min(int(math.floor(len(sorted_values) * p)), len(sorted_values) - 1)
    return float(sorted_values[index])


def summarize_latencies(latencies_ms: Iterable[float]) -> LatencySummary:
    values = sorted(latencies_ms)
    if not values:
        return LatencySummary()
    return LatencySummary(
        avg_ms=sum(values) / len(values),
        p50_ms=percentile(values, 0.50),
        p95_ms=percentile(values, 0.95),
        p99_ms=percentile(values, 0.99),
        min_ms=float(values[0]),
        max_ms=float(values[-1]),
    )


def distinct_errors(
    messages: Iterable[Optional[str]], limit: int = DEFAULT_MAX_ERRORS
) -> List[str]:
    """First `limit` distinct non-empty messages, in encounter order."""
    seen: List[str] = []
    for message in messages:
        if not message or message in seen:
            continue
        seen.append(message)
        if len(seen) >= limit:
            break
    return seen


def _rate(numerator: float, seconds: float) -> float:
    return numerator / seconds if seconds > 0 else 0.0


def _success_rate(successes: int, errors: int) -> float:
    total = successes + errors
    return successes / total if total else 0.0


def aggregate_two_stage(
    generation: Sequence[GenerationOutcome],
    loads: Sequence[LoadOutcome],
    copy_seconds: float,
    *,
    workers: int,
    connections_per_worker: int,
    records_per_connection: int,
    generation_seconds: Optional[float] = None,
    max_errors: int = DEFAULT_MAX_ERRORS,
    mode: str = "two_stage",
) -> BenchmarkResult:
    """
    Reduce a two-stage run. Throughput uses the load-stage duration only.

    Failed generations count as errors alongside failed loads, so the success
    rate is measured against every artifact that was attempted.
    """
    successful_gen = [g for g in generation if g.success]
    failed_gen = [g for g in generation if not g.success]
    successful_loads = [r for r in loads if r.success]
    failed_loads = [r for r in loads if not r.success]

    total_records = sum(r.records_inserted for r in successful_loads)
    total_mb = sum(r.data_size_mb for r in successful_loads)
    success_count = len(successful_loads)
    error_count = len(failed_gen) + len(failed_loads)
    latency = summarize_latencies(r.elapsed_ms for r in successful_loads)

    errors = distinct_errors(
        [g.error or "Generation failed" for g in failed_gen]
        + [r.error or "COPY failed" for r in failed_loads],
        max_errors,
    )

    return BenchmarkResult(
        mode=mode,
        workers=workers,
        connections_per_worker=connections_per_worker,
        total_connections=len(successful_gen),
        batch_size=records_per_connection,
        duration_seconds=copy_seconds,
        generation_duration_seconds=generation_seconds,
        total_records=total_records,
        total_data_size_mb=total_mb,
        throughput_mb_per_sec=_rate(total_mb, copy_seconds),
        throughput_records_per_sec=_rate(total_records, copy_seconds),
        avg_latency_ms=latency.avg_ms,
        p50_latency_ms=latency.p50_ms,
        p95_latency_ms=latency.p95_ms,
        p99_latency_ms=latency.p99_ms,
        min_latency_ms=latency.min_ms,
        max_latency_ms=latency.max_ms,
        success_count=success_count,
        error_count=error_count,
        success_rate=_success_rate(success_count, error_count),
        errors=errors,
    )


def aggregate_insert_loop(
    outcomes: Sequence[InsertLoopOutcome],
    elapsed_seconds: float,
    *,
    workers: int,
    connections_per_worker: int,
    batch_size: int,
    max_errors: int = DEFAULT_MAX_ERRORS,
    mode: str = "insert_loop",
) -> BenchmarkResult:
    """
    Reduce insert-loop (or streaming) workers. Percentiles are computed over
    the pooled per-batch latencies of every worker.
    """
    total_records = sum(o.records_inserted for o in outcomes)
    total_mb = sum(o.data_size_mb for o in outcomes)
    success_count = sum(o.success_count for o in outcomes)
    error_count = sum(o.error_count for o in outcomes)
    latency = summarize_latencies(lat for o in outcomes for lat in o.latencies_ms)

    return BenchmarkResult(
        mode=mode,
        workers=workers,
        connections_per_worker=connections_per_worker,
        total_connections=workers * connections_per_worker,
        batch_size=batch_size,
        duration_seconds=elapsed_seconds,
        total_records=total_records,
        total_data_size_mb=total_mb,
        throughput_mb_per_sec=_rate(total_mb, elapsed_seconds),
        throughput_records_per_sec=_rate(total_records, elapsed_seconds),
        avg_latency_ms=latency.avg_ms,
        p50_latency_ms=latency.p50_ms,
        p95_latency_ms=latency.p95_ms,
        p99_latency_ms=latency.p99_ms,
        min_latency_ms=latency.min_ms,
        max_latency_ms=latency.max_ms,
        success_count=success_count,
        error_count=error_count,
        success_rate=_success_rate(success_count, error_count),
        errors=distinct_errors((e for o in outcomes for e in o.errors), max_errors),
    )


__all__ = [
    "aggregate_insert_loop",
    "aggregate_two_stage",
    "distinct_errors",
    "percentile",
    "summarize_latencies",
]
