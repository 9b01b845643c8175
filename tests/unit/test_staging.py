from __future__ import annotations

import csv
import random
from pathlib import Path

import pytest

from ingest_throughput.domain.models import Record
from ingest_throughput.engine.generator import generate_record
from ingest_throughput.engine.staging import (
    CSV_HEADERS,
    StagingWriter,
    artifact_path,
    cleanup_artifacts,
)
from ingest_throughput.errors import GenerationFailure

TRICKY_TEXT = 'He said "hi", then left\nsecond line, with a comma'
EXPECTED_COLUMNS = 15


def _tricky_record() -> Record:
    return Record(
        task_id="task-1",
        step_index=3,
        name='field, "quoted"',
        text=TRICKY_TEXT,
        target_not_found=True,
        compared_to_text_id=None,
        list_item_index=7,
        type="innerText",
    )


def _read_rows(path: Path) -> list[list[str]]:
    with path.open("r", newline="", encoding="utf-8") as f:
        return list(csv.reader(f))


def test_header_matches_table_columns() -> None:
    assert len(CSV_HEADERS) == EXPECTED_COLUMNS
    assert CSV_HEADERS[0] == "taskId"
    assert CSV_HEADERS[-1] == "type"
    assert "attachmentS3Key" in CSV_HEADERS


def test_artifact_path_is_unique_per_worker_connection_and_time(tmp_path: Path) -> None:
    path = artifact_path(tmp_path, 2, 5, 1700000000123)

    assert path == tmp_path / "worker_2_conn_5_1700000000123.csv"
    assert artifact_path(tmp_path, 2, 6, 1700000000123) != path


def test_escaped_fields_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "dir" / "artifact.csv"
    record = _tricky_record()

    with StagingWriter.create(path) as writer:
        writer.append(record)
        size = writer.finalize()

    rows = _read_rows(path)
    assert size == path.stat().st_size
    assert rows[0] == CSV_HEADERS
    assert len(rows) == 2
    assert Record.from_csv_row(rows[1]) == record


def test_generated_records_round_trip(tmp_path: Path) -> None:
    rng = random.Random(7)
    records = [generate_record((2048, 4096), rng) for _ in range(5)]
    path = tmp_path / "generated.csv"

    with StagingWriter.create(path) as writer:
        for record in records:
            writer.append(record)
        writer.finalize()
        assert writer.rows_written == len(records)

    rows = _read_rows(path)
    assert [Record.from_csv_row(row) for row in rows[1:]] == records


def test_null_and_boolean_rendering() -> None:
    row = _tricky_record().to_csv_row()
    by_column = dict(zip(CSV_HEADERS, row))

    assert by_column["comparedToTextId"] == ""
    assert by_column["targetNotFound"] == "true"
    assert by_column["detectedChange"] == "false"
    assert by_column["listItemIndex"] == "7"


def test_create_fails_with_generation_failure_when_parent_is_a_file(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")

    with pytest.raises(GenerationFailure) as excinfo:
        StagingWriter.create(blocker / "staging" / "artifact.csv")

    assert "Cannot create artifact" in excinfo.value.message


def test_partial_artifact_is_closed_and_deletable(tmp_path: Path) -> None:
    path = tmp_path / "partial.csv"

    with pytest.raises(RuntimeError):
        with StagingWriter.create(path) as writer:
            writer.append(_tricky_record())
            raise RuntimeError("disk went away")

    assert writer.closed
    assert cleanup_artifacts([path]) == 1
    assert not path.exists()


def test_cleanup_is_idempotent_and_skips_missing(tmp_path: Path) -> None:
    paths = []
    for i in range(3):
        path = tmp_path / f"a{i}.csv"
        path.write_text("x", encoding="utf-8")
        paths.append(path)
    paths.append(tmp_path / "never-created.csv")

    assert cleanup_artifacts(paths + [""]) == 3
    assert cleanup_artifacts(paths) == 0


def test_cleanup_continues_after_a_failed_delete(tmp_path: Path) -> None:
    directory = tmp_path / "is_a_directory.csv"
    directory.mkdir()
    good = tmp_path / "good.csv"
    good.write_text("x", encoding="utf-8")

    assert cleanup_artifacts([directory, good]) == 1
    assert not good.exists()
    assert directory.exists()
