"""
Stage profiling for the benchmark coordinator.

`profile_stage` measures one pipeline stage:
- Wall-clock time (perf_counter)
- Peak RSS of this process via a background sampling thread (psutil)
- CPU percent of this process over the block (psutil)

Worker processes are not included in RSS/CPU; the numbers describe the
coordinating process (and thread-mode workers running inside it).

    with profile_stage("copy") as stats:
        run_batches()
    log.info("copy done", extra=stats.as_log_fields())
"""

from __future__ import annotations

import contextlib
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generator, Optional

import psutil


@dataclass
class StageStats:
    """
    Measurements for one profiled stage.
    """

    label: str
    start_ts: float = field(default=0.0)
    end_ts: float = field(default=0.0)
    duration_seconds: float = field(default=0.0)
    peak_rss_bytes: Optional[int] = field(default=None)
    cpu_percent: Optional[float] = field(default=None)

    def as_log_fields(self) -> Dict[str, Any]:
        return {
            "stage": self.label,
            "duration_seconds": round(self.duration_seconds, 3),
            "peak_rss_mb": (
                round(self.peak_rss_bytes / (1024 * 1024), 1) if self.peak_rss_bytes else None
            ),
            "cpu_percent": round(self.cpu_percent, 1) if self.cpu_percent is not None else None,
        }


@contextlib.contextmanager
def profile_stage(
    label: str,
    sample_interval_ms: int = 50,
    clock: Callable[[], float] = time.perf_counter,
) -> Generator[StageStats, None, None]:
    """
    Profile a block, sampling RSS every `sample_interval_ms`.

    The sampler is a daemon thread so it never keeps the interpreter alive;
    it is joined (with a short timeout) when the block exits.
    """
    stats = StageStats(label=label)
    process = psutil.Process()
    peak_rss = process.memory_info().rss
    stop_sampling = threading.Event()

    def _sample_memory() -> None:
        nonlocal peak_rss
        while not stop_sampling.is_set():
            try:
                peak_rss = max(peak_rss, process.memory_info().rss)
            except psutil.Error:
                return
            stop_sampling.wait(timeout=sample_interval_ms / 1000.0)

    process.cpu_percent(interval=None)
    sampler = threading.Thread(target=_sample_memory, name=f"rss-{label}", daemon=True)
    sampler.start()

    stats.start_ts = clock()
    try:
        yield stats
    finally:
        stats.end_ts = clock()
        stats.duration_seconds = stats.end_ts - stats.start_ts
        stop_sampling.set()
        sampler.join(timeout=1.0)
        stats.peak_rss_bytes = peak_rss or None
        stats.cpu_percent = process.cpu_percent(interval=None)


__all__ = ["StageStats", "profile_stage"]
