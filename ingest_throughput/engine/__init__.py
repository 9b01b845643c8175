"""
Benchmark engine: record generation, CSV staging, COPY bulk loads, worker
units, the two-stage coordinator, and metrics aggregation.
"""

from ingest_throughput.engine.coordinator import (
    CoordinatorState,
    TwoStageCoordinator,
    run_high_throughput,
    run_two_stage,
)
from ingest_throughput.engine.generator import generate_batch, generate_record
from ingest_throughput.engine.loader import BulkLoader
from ingest_throughput.engine.metrics import (
    aggregate_insert_loop,
    aggregate_two_stage,
    percentile,
    summarize_latencies,
)
from ingest_throughput.engine.staging import StagingWriter, cleanup_artifacts

__all__ = [
    "BulkLoader",
    "CoordinatorState",
    "StagingWriter",
    "TwoStageCoordinator",
    "aggregate_insert_loop",
    "aggregate_two_stage",
    "cleanup_artifacts",
    "generate_batch",
    "generate_record",
    "percentile",
    "run_high_throughput",
    "run_two_stage",
    "summarize_latencies",
]
