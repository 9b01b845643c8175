from __future__ import annotations

import csv
from pathlib import Path

import pytest

from ingest_throughput.domain.models import GenerationOutcome, InsertLoopOutcome, LoadOutcome
from ingest_throughput.engine.staging import CSV_HEADERS
from ingest_throughput.engine.workers import (
    CopyTask,
    GenerationTask,
    InsertLoopTask,
    failed_outcome_for,
    run_copy,
    run_generation,
    run_insert_loop,
    run_worker_unit,
)
from ingest_throughput.errors import FailureKind

RECORD_COUNT = 3
SEED = 99


def test_generation_writes_a_complete_artifact(engine_settings) -> None:
    outcome = run_generation(
        GenerationTask(engine_settings, worker_id=4, connection_id=1, record_count=RECORD_COUNT)
    )

    assert outcome.success
    assert outcome.records_generated == RECORD_COUNT
    path = Path(outcome.file_path)
    assert path.parent == engine_settings.staging_dir
    assert path.name.startswith("worker_4_conn_1_")
    with path.open("r", newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))
    assert rows[0] == CSV_HEADERS
    assert len(rows) == RECORD_COUNT + 1
    assert outcome.file_size_mb == pytest.approx(path.stat().st_size / (1024 * 1024))


def test_generation_failure_is_an_outcome(make_settings, tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("x", encoding="utf-8")
    settings = make_settings(staging_dir=blocker / "staging")

    outcome = run_worker_unit(GenerationTask(settings, 0, 0, RECORD_COUNT))

    assert isinstance(outcome, GenerationOutcome)
    assert not outcome.success
    assert outcome.error_kind is FailureKind.GENERATION
    assert "Cannot create artifact" in outcome.error
    assert outcome.file_path


def test_copy_closes_its_connector(engine_settings, fake_db) -> None:
    artifact = run_generation(GenerationTask(engine_settings, 0, 0, RECORD_COUNT))

    outcome = run_copy(
        CopyTask(
            engine_settings,
            0,
            0,
            artifact.file_path,
            expected_rows=RECORD_COUNT,
            connector_factory=fake_db.factory,
        )
    )

    assert outcome.success
    assert outcome.records_inserted == RECORD_COUNT
    assert all(c.closed for c in fake_db.connectors)


def test_copy_factory_failure_is_an_outcome(engine_settings) -> None:
    def _broken_factory(settings):
        raise RuntimeError("pool exhausted")

    outcome = run_worker_unit(
        CopyTask(engine_settings, 0, 0, "/nowhere.csv", connector_factory=_broken_factory)
    )

    assert isinstance(outcome, LoadOutcome)
    assert not outcome.success
    assert outcome.error == "pool exhausted"
    assert outcome.error_kind is FailureKind.LOAD


def test_insert_loop_keeps_going_after_failed_batches(engine_settings, fake_db) -> None:
    fake_db.fail_insert = lambda call: call % 2 == 0

    outcome = run_insert_loop(
        InsertLoopTask(engine_settings, 0, 0, batch_size=2, connector_factory=fake_db.factory)
    )

    assert outcome.success_count > 0
    assert outcome.error_count > 0
    assert "insert rejected" in outcome.errors
    assert len(outcome.latencies_ms) == outcome.success_count + outcome.error_count
    assert outcome.records_inserted == 2 * outcome.success_count
    assert fake_db.connectors[0].closed


def test_insert_loop_excludes_warmup_from_measurements(make_settings, fake_db) -> None:
    settings = make_settings(warmup_duration=0.05, test_duration=0.05)

    outcome = run_insert_loop(
        InsertLoopTask(settings, 0, 0, batch_size=1, connector_factory=fake_db.factory)
    )

    assert outcome.records_inserted < fake_db.inserted_rows
    assert outcome.duration_seconds < settings.warmup_duration + settings.test_duration


def test_insert_loop_with_record_budget(engine_settings, fake_db) -> None:
    outcome = run_insert_loop(
        InsertLoopTask(
            engine_settings,
            1,
            2,
            batch_size=2,
            record_budget=5,
            seed=SEED,
            connector_factory=fake_db.factory,
        )
    )

    assert outcome.records_inserted == 5
    assert fake_db.insert_calls == 3
    assert outcome.success_count == 3
    assert outcome.data_size_mb > 0
    assert outcome.latency.max_ms >= outcome.latency.min_ms


def test_insert_loop_fatal_error_is_reported(engine_settings) -> None:
    def _broken_factory(settings):
        raise RuntimeError("auth failed")

    outcome = run_insert_loop(
        InsertLoopTask(engine_settings, 3, 0, batch_size=2, connector_factory=_broken_factory)
    )

    assert isinstance(outcome, InsertLoopOutcome)
    assert outcome.error_count == 1
    assert outcome.errors == ("Worker 3 fatal: auth failed",)
    assert outcome.records_inserted == 0


def test_unknown_task_is_rejected() -> None:
    with pytest.raises(TypeError):
        run_worker_unit(object())  # type: ignore[arg-type]


def test_failed_outcome_matches_task_stage(engine_settings) -> None:
    generation = failed_outcome_for(GenerationTask(engine_settings, 1, 2, 5), "crashed")
    load = failed_outcome_for(CopyTask(engine_settings, 1, 2, "/a.csv"), "crashed")
    loop = failed_outcome_for(InsertLoopTask(engine_settings, 1, 2, 5), "crashed")

    assert isinstance(generation, GenerationOutcome) and not generation.success
    assert isinstance(load, LoadOutcome) and load.file_path == "/a.csv"
    assert load.error_kind is FailureKind.LOAD
    assert isinstance(loop, InsertLoopOutcome) and loop.errors == ("crashed",)


def test_failed_generation_outcome_keeps_assigned_path(engine_settings) -> None:
    task = GenerationTask(engine_settings, 1, 2, 5, file_path="/staging/w1.csv")

    outcome = failed_outcome_for(task, "crashed")

    assert outcome.file_path == "/staging/w1.csv"


def test_generation_writes_to_assigned_path(engine_settings) -> None:
    target = engine_settings.staging_dir / "assigned.csv"

    outcome = run_generation(
        GenerationTask(engine_settings, 0, 0, RECORD_COUNT, file_path=str(target))
    )

    assert outcome.success
    assert outcome.file_path == str(target)
    assert target.exists()
