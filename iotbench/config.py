"""
Environment settings for the IoT workload harness.

Connection details for the PostgreSQL adapter, logging switches and the
defaults the CLI falls back to are read from the environment (or a ``.env``
file). Workload properties (operation mix, key choice, topology) are a
separate surface, see `iotbench.workload.properties`.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # PostgreSQL adapter
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("iotbench", alias="DB_NAME")
    db_statement_timeout_ms: int = Field(30_000, ge=0, alias="DB_STATEMENT_TIMEOUT_MS")
    db_insert_batch_size: int = Field(3000, ge=1, alias="DB_INSERT_BATCH_SIZE")

    # Logging
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # CLI defaults
    benchmark_threads: int = Field(4, ge=1, alias="BENCHMARK_THREADS")
    benchmark_operations: int = Field(100_000, ge=0, alias="BENCHMARK_OPERATIONS")
    benchmark_target_ops: float = Field(0.0, ge=0, alias="BENCHMARK_TARGET_OPS")
    benchmark_backend: str = Field("memory", alias="BENCHMARK_BACKEND")
    results_dir: str = Field("results", alias="RESULTS_DIR")
    workload_properties: Optional[str] = Field(None, alias="WORKLOAD_PROPERTIES")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings read once per process; tests clear the cache between cases."""
    return Settings()


__all__ = ["Settings", "get_settings"]
