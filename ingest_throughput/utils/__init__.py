"""
Utilities package for the insert throughput benchmark.

Exports shared helpers for logging and stage profiling.
Keep this package lightweight and free of domain-specific logic.
"""

from ingest_throughput.utils.logging import configure_logging, get_logger
from ingest_throughput.utils.profiler import StageStats, profile_stage

__all__ = [
    "configure_logging",
    "get_logger",
    "StageStats",
    "profile_stage",
]
