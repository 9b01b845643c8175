"""
Configuration settings for the insert throughput benchmark.

Uses Pydantic Settings to load environment variables for the database
connection, worker topology, data volume, and engine tuning. The resulting
`Settings` value is frozen; the CLI reads it once via `get_settings()` and
passes it down explicitly to every engine component.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ExecutorKind = Literal["process", "thread"]


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT", gt=0)
    db_name: str = Field("browseai", alias="DB_NAME")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("", alias="DB_PASSWORD")
    db_ssl: bool = Field(False, alias="DB_SSL")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    json_logs: bool = Field(False, alias="JSON_LOGS")

    # Worker topology. max_workers/worker_step are accepted but not consulted.
    min_workers: int = Field(1, alias="MIN_WORKERS", gt=0)
    max_workers: int = Field(4, alias="MAX_WORKERS", gt=0)
    worker_step: int = Field(1, alias="WORKER_STEP", gt=0)
    connections_per_worker: int = Field(20, alias="CONNECTIONS_PER_WORKER", gt=0)

    # Insert loop timing
    batch_size: int = Field(100, alias="BATCH_SIZE", gt=0)
    test_duration: float = Field(30.0, alias="TEST_DURATION", gt=0)
    warmup_duration: float = Field(5.0, alias="WARMUP_DURATION", gt=0)

    # Data generation
    min_text_length: int = Field(50, alias="MIN_TEXT_LENGTH", gt=0)
    max_text_length: int = Field(500, alias="MAX_TEXT_LENGTH", gt=0)
    data_size_mb: float = Field(100.0, alias="DATA_SIZE_MB", gt=0)
    min_record_bytes: int = Field(50 * 1024, alias="MIN_RECORD_BYTES", gt=0)
    max_record_bytes: int = Field(100 * 1024, alias="MAX_RECORD_BYTES", gt=0)
    avg_record_bytes: int = Field(75 * 1024, alias="AVG_RECORD_BYTES", gt=0)

    # Declared thresholds (reported in `info`, never enforced)
    max_latency_ms: float = Field(1000.0, alias="MAX_LATENCY_MS", gt=0)
    min_throughput_mbps: float = Field(10.0, alias="MIN_THROUGHPUT_MBPS", gt=0)

    # Modes
    use_two_stage: bool = Field(False, alias="USE_TWO_STAGE")
    use_high_throughput: bool = Field(False, alias="USE_HIGH_THROUGHPUT")
    use_streaming: bool = Field(False, alias="USE_STREAMING")

    # Engine
    target_table: str = Field("CapturedTextsDistributedv2", alias="TARGET_TABLE")
    staging_dir: Path = Field(Path("temp_csv_files"), alias="STAGING_DIR")
    results_dir: Path = Field(Path("aurora_benchmark_results"), alias="RESULTS_DIR")
    max_concurrent_copies: int = Field(10, alias="MAX_CONCURRENT_COPIES", gt=0)
    high_throughput_copy_ceiling: int = Field(20, alias="HIGH_THROUGHPUT_COPY_CEILING", gt=0)
    copy_chunk_bytes: int = Field(64 * 1024, alias="COPY_CHUNK_BYTES", gt=0)
    copy_timeout_seconds: Optional[float] = Field(None, alias="COPY_TIMEOUT_SECONDS", gt=0)
    worker_executor: ExecutorKind = Field("process", alias="WORKER_EXECUTOR")
    copy_executor: ExecutorKind = Field("thread", alias="COPY_EXECUTOR")
    max_reported_errors: int = Field(10, alias="MAX_REPORTED_ERRORS", gt=0)
    streaming_batch_size: int = Field(50, alias="STREAMING_BATCH_SIZE", gt=0)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    @property
    def total_connections(self) -> int:
        return self.min_workers * self.connections_per_worker

    @model_validator(mode="after")
    def _check_record_bounds(self) -> "Settings":
        if self.min_record_bytes > self.max_record_bytes:
            raise ValueError(
                f"min_record_bytes ({self.min_record_bytes}) exceeds "
                f"max_record_bytes ({self.max_record_bytes})"
            )
        return self

    @property
    def record_size_range(self) -> tuple[int, int]:
        return self.min_record_bytes, self.max_record_bytes

    def dsn(self) -> str:
        """Compose a libpq URI; ssl maps to sslmode=require."""
        auth = self.db_user if not self.db_password else f"{self.db_user}:{self.db_password}"
        uri = f"postgresql://{auth}@{self.db_host}:{self.db_port}/{self.db_name}"
        if self.db_ssl:
            uri += "?sslmode=require"
        return uri


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["ExecutorKind", "Settings", "get_settings"]
