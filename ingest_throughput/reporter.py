from __future__ import annotations

from typing import Optional

from rich import box
from rich.console import Console
from rich.table import Table

from ingest_throughput.domain.models import BenchmarkResult


def _mb(value: float) -> str:
    return f"{value:,.2f}"


def _ms(value: float) -> str:
    return f"{value:,.1f}"


def build_result_table(result: BenchmarkResult) -> Table:
    """
    Two-column summary of one run: configuration, volume, throughput,
    latency percentiles, and outcome counts.
    """
    table = Table(
        title=f"Insert Throughput Results ({result.mode})",
        box=box.ROUNDED,
        caption=result.timestamp,
        show_header=False,
    )
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", justify="right")

    table.add_row("Workers", str(result.workers))
    table.add_row("Connections / worker", str(result.connections_per_worker))
    table.add_row("Total connections", str(result.total_connections))
    table.add_row("Batch size", f"{result.batch_size:,}")
    table.add_section()
    table.add_row("Records", f"[magenta]{result.total_records:,}[/magenta]")
    table.add_row("Data (MB)", _mb(result.total_data_size_mb))
    table.add_row("Duration (s)", f"{result.duration_seconds:.2f}")
    if result.generation_duration_seconds is not None:
        table.add_row("Generation (s)", f"{result.generation_duration_seconds:.2f}")
    mbps = _mb(result.throughput_mb_per_sec)
    table.add_row("Throughput (MB/s)", f"[bold green]{mbps}[/bold green]")
    table.add_row("Throughput (records/s)", f"{result.throughput_records_per_sec:,.1f}")
    table.add_section()
    table.add_row("Avg latency (ms)", _ms(result.avg_latency_ms))
    percentiles = (result.p50_latency_ms, result.p95_latency_ms, result.p99_latency_ms)
    table.add_row("p50 / p95 / p99 (ms)", " / ".join(_ms(v) for v in percentiles))
    table.add_row("Min / max (ms)", f"{_ms(result.min_latency_ms)} / {_ms(result.max_latency_ms)}")
    table.add_section()
    rate_style = "green" if result.error_count == 0 else "yellow"
    table.add_row("Succeeded", str(result.success_count))
    table.add_row("Failed", f"[red]{result.error_count}[/red]" if result.error_count else "0")
    table.add_row("Success rate", f"[{rate_style}]{result.success_rate * 100:.1f}%[/{rate_style}]")
    return table


def print_result(result: BenchmarkResult, console: Optional[Console] = None) -> None:
    console = console or Console()
    console.print(build_result_table(result))
    if result.errors:
        console.print("[bold red]Errors:[/bold red]")
        for message in result.errors:
            console.print(f"  - {message}", markup=False)
