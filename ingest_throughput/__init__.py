"""
Insert Throughput - write-throughput benchmark for distributed PostgreSQL.

This package drives many concurrent ingestion paths against one table and
reports throughput and latency percentiles:

- Two-stage bulk load: parallel CSV generation, then COPY under a
  concurrency cap
- High-throughput two-stage: copy cap scaled to the connection count
- Insert loop: timed batch inserts per connection
- Streaming: a fixed record budget per connection
"""

from __future__ import annotations

__version__ = "0.1.0"

# Public API exports
from ingest_throughput.config import Settings, get_settings
from ingest_throughput.domain.models import BenchmarkResult, Record
from ingest_throughput.engine.coordinator import CoordinatorState, TwoStageCoordinator
from ingest_throughput.errors import (
    BenchmarkError,
    ConnectivityFailure,
    FailureKind,
    FatalFailure,
    GenerationFailure,
    LoadFailure,
)
from ingest_throughput.orchestrator import persist_result, run_benchmark
from ingest_throughput.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    # Configuration
    "Settings",
    "get_settings",
    # Domain
    "BenchmarkResult",
    "Record",
    # Engine
    "CoordinatorState",
    "TwoStageCoordinator",
    # Orchestration
    "persist_result",
    "run_benchmark",
    # Errors
    "BenchmarkError",
    "ConnectivityFailure",
    "FailureKind",
    "FatalFailure",
    "GenerationFailure",
    "LoadFailure",
    # Logging
    "configure_logging",
    "get_logger",
]
