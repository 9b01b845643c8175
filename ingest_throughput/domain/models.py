"""
Domain models for the insert throughput benchmark.

`Record` mirrors the target table (see `db/init.sql`); its field aliases are
the table's column names and define the staged CSV column order. The outcome
dataclasses are the only values that cross a worker boundary, so they stay
plain, frozen, and picklable.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, Field

from ingest_throughput.errors import FailureKind


class Record(BaseModel):
    """
    One synthetic captured-text row. `text` carries the large JSON payload.
    """

    task_id: str = Field(..., alias="taskId")
    step_index: int = Field(..., alias="stepIndex")
    name: str = Field(..., alias="name")
    text: str = Field(..., alias="text", description="JSON blob padded to a target size.")
    target_not_found: bool = Field(False, alias="targetNotFound")
    detected_change: bool = Field(False, alias="detectedChange")
    compared_to_text_id: Optional[str] = Field(None, alias="comparedToTextId")
    compared_to_recording: bool = Field(False, alias="comparedToRecording")
    list_id: Optional[str] = Field(None, alias="listId")
    list_item_index: Optional[int] = Field(None, alias="listItemIndex")
    list_page_number: Optional[int] = Field(None, alias="listPageNumber")
    list_page_item_index: Optional[int] = Field(None, alias="listPageItemIndex")
    attachment_s3_key: Optional[str] = Field(None, alias="attachmentS3Key")
    attachment_mime_type: Optional[str] = Field(None, alias="attachmentMimeType")
    type: str = Field(..., alias="type")

    model_config = {
        "frozen": True,
        "populate_by_name": True,
    }

    @classmethod
    def column_names(cls) -> List[str]:
        """Table column names in declared field order."""
        return [info.alias or name for name, info in cls.model_fields.items()]

    def to_csv_row(self) -> List[str]:
        """
        Render field values as strings for a delimited row.

        NULL is the empty string and booleans are lowercase, which is what
        PostgreSQL's CSV COPY format expects.
        """
        row: List[str] = []
        for name in type(self).model_fields:
            value = getattr(self, name)
            if value is None:
                row.append("")
            elif isinstance(value, bool):
                row.append("true" if value else "false")
            else:
                row.append(str(value))
        return row

    def to_db_row(self) -> Tuple[Any, ...]:
        return tuple(getattr(self, name) for name in type(self).model_fields)

    @classmethod
    def from_csv_row(cls, row: List[str]) -> "Record":
        """Inverse of `to_csv_row`: empty cells in nullable columns become None."""
        names = list(cls.model_fields)
        if len(row) != len(names):
            raise ValueError(f"Expected {len(names)} fields, got {len(row)}")
        values = {}
        for name, raw in zip(names, row):
            info = cls.model_fields[name]
            if raw == "" and not info.is_required() and info.default is None:
                values[name] = None
            else:
                values[name] = raw
        return cls.model_validate(values)


@dataclass(frozen=True)
class LatencyMeasurement:
    start: float
    end: float
    latency_ms: float
    success: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class LatencySummary:
    avg_ms: float = 0.0
    p50_ms: float = 0.0
    p95_ms: float = 0.0
    p99_ms: float = 0.0
    min_ms: float = 0.0
    max_ms: float = 0.0


@dataclass(frozen=True)
class GenerationOutcome:
    worker_id: int
    connection_id: int
    file_path: str
    records_generated: int
    file_size_mb: float
    elapsed_ms: float
    success: bool
    error: Optional[str] = None
    error_kind: Optional[FailureKind] = None


@dataclass(frozen=True)
class LoadOutcome:
    worker_id: int
    connection_id: int
    file_path: str
    records_inserted: int
    data_size_mb: float
    elapsed_ms: float
    success: bool
    error: Optional[str] = None
    error_kind: Optional[FailureKind] = None


@dataclass(frozen=True)
class InsertLoopOutcome:
    worker_id: int
    connection_id: int
    records_inserted: int
    data_size_mb: float
    duration_seconds: float
    latency: LatencySummary
    latencies_ms: Tuple[float, ...] = field(default_factory=tuple)
    success_count: int = 0
    error_count: int = 0
    errors: Tuple[str, ...] = field(default_factory=tuple)


class BenchmarkResult(BaseModel):
    """Final aggregate of one benchmark run; persisted as JSON."""

    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    mode: str
    workers: int
    connections_per_worker: int
    total_connections: int
    batch_size: int
    duration_seconds: float
    generation_duration_seconds: Optional[float] = None
    total_records: int
    total_data_size_mb: float
    throughput_mb_per_sec: float
    throughput_records_per_sec: float
    avg_latency_ms: float
    p50_latency_ms: float
    p95_latency_ms: float
    p99_latency_ms: float
    min_latency_ms: float
    max_latency_ms: float
    success_count: int
    error_count: int
    success_rate: float
    errors: List[str] = Field(default_factory=list)

    model_config = {"frozen": True}


__all__ = [
    "BenchmarkResult",
    "GenerationOutcome",
    "InsertLoopOutcome",
    "LatencyMeasurement",
    "LatencySummary",
    "LoadOutcome",
    "Record",
]
