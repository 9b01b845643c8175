from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import typer

from ingest_throughput.config import Settings, get_settings
from ingest_throughput.engine.coordinator import TwoStageCoordinator
from ingest_throughput.errors import BenchmarkError
from ingest_throughput.orchestrator import MODES, resolve_mode, run_benchmark
from ingest_throughput.reporter import print_result
from ingest_throughput.utils.logging import configure_logging

app = typer.Typer(help="Insert throughput benchmark CLI.")


def _require_password(settings: Settings) -> None:
    if not settings.db_password:
        typer.echo("DB_PASSWORD is not set (environment or .env).", err=True)
        raise typer.Exit(code=1)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} "
        f"ssl={settings.db_ssl} | mode={resolve_mode(settings)} "
        f"workers={settings.min_workers} connections/worker={settings.connections_per_worker} "
        f"total={settings.total_connections}"
    )
    typer.echo(
        f"data={settings.data_size_mb}MB record={settings.min_record_bytes}-"
        f"{settings.max_record_bytes}B (avg {settings.avg_record_bytes}B) "
        f"batch={settings.batch_size} test={settings.test_duration}s "
        f"warmup={settings.warmup_duration}s"
    )
    typer.echo(
        f"copies<={settings.max_concurrent_copies} table={settings.target_table} "
        f"staging={settings.staging_dir} results={settings.results_dir} | "
        f"thresholds: latency<={settings.max_latency_ms}ms "
        f"throughput>={settings.min_throughput_mbps}MB/s"
    )


@app.command()
def run(
    mode: Optional[str] = typer.Option(
        None,
        "--mode",
        "-m",
        help=f"Benchmark mode ({', '.join(MODES)}); default from USE_* settings.",
    ),
    results_dir: Optional[Path] = typer.Option(
        None,
        "--results-dir",
        help="Directory for the result JSON (default from settings).",
    ),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit logs as JSON."),
    persist: bool = typer.Option(True, "--persist/--no-persist", help="Write the result JSON."),
) -> None:
    """
    Run one benchmark, print the summary table, and persist the result.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=json_logs or settings.json_logs)
    _require_password(settings)

    try:
        selected = resolve_mode(settings, mode)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--mode") from exc

    typer.echo(
        f"Running mode='{selected}' with {settings.total_connections} connections "
        f"({settings.min_workers} workers x {settings.connections_per_worker})."
    )
    try:
        result = run_benchmark(
            settings, mode=selected, persist=persist, results_dir=results_dir
        )
    except BenchmarkError as exc:
        typer.echo(f"[{exc.kind.value.upper()}] {exc.message}", err=True)
        raise typer.Exit(code=1) from exc

    print_result(result)


@app.command()
def stage(
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit logs as JSON."),
) -> None:
    """
    Run stage 1 only and keep the generated CSV artifacts for inspection.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=json_logs or settings.json_logs)

    coordinator = TwoStageCoordinator(settings)
    outcomes, records_per_connection = coordinator.generate()
    ok = [o for o in outcomes if o.success]
    typer.echo(
        f"Generated {len(ok)}/{len(outcomes)} artifacts "
        f"({records_per_connection} records each) in {settings.staging_dir}"
    )
    for outcome in outcomes:
        status = f"{outcome.file_size_mb:.2f}MB" if outcome.success else f"FAILED: {outcome.error}"
        typer.echo(f"  {outcome.file_path or '-'}  {status}")
    if not ok:
        raise typer.Exit(code=1)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
