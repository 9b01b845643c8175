"""
Domain package for the insert throughput benchmark.

Exports the record schema, worker outcomes, and the final result model.
Keep this package focused on data definitions and validation concerns.
"""

from ingest_throughput.domain.models import (
    BenchmarkResult,
    GenerationOutcome,
    InsertLoopOutcome,
    LatencyMeasurement,
    LatencySummary,
    LoadOutcome,
    Record,
)

__all__ = [
    "BenchmarkResult",
    "GenerationOutcome",
    "InsertLoopOutcome",
    "LatencyMeasurement",
    "LatencySummary",
    "LoadOutcome",
    "Record",
]
