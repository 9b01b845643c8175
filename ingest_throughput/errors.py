"""
Failure taxonomy for the benchmark engine.

Per-worker failures (generation, load) are normally carried inside outcome
objects as a `FailureKind` plus message; the exception classes exist so the
worker boundary and the coordinator can raise and match them explicitly.
Only `FatalFailure` and `ConnectivityFailure` ever escape a benchmark run.
"""

from __future__ import annotations

import enum


class FailureKind(str, enum.Enum):
    GENERATION = "generation"
    LOAD = "load"
    FATAL = "fatal"
    CONNECTIVITY = "connectivity"


class BenchmarkError(Exception):
    """Base class; subclasses pin `kind`."""

    kind: FailureKind

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class GenerationFailure(BenchmarkError):
    """Directory or disk error while staging an artifact."""

    kind = FailureKind.GENERATION


class LoadFailure(BenchmarkError):
    """Connection, protocol, or streaming error during a bulk load."""

    kind = FailureKind.LOAD


class FatalFailure(BenchmarkError):
    """No stage-1 artifact was produced; nothing to load."""

    kind = FailureKind.FATAL


class ConnectivityFailure(BenchmarkError):
    """The initial reachability check failed."""

    kind = FailureKind.CONNECTIVITY


__all__ = [
    "BenchmarkError",
    "ConnectivityFailure",
    "FailureKind",
    "FatalFailure",
    "GenerationFailure",
    "LoadFailure",
]
