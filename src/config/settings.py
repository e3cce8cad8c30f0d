# src/config/settings.py — v3
"""Typed configuration loaded from the environment and .env via pydantic-settings.

Field names map one-to-one onto the environment variables the CI steps
already export (CACHE_DIR, PROJECT_DIR, DB_HOST, CI_BUILD_ID, ...).
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from smartcache.core.errors import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment and .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Locations ===
    cache_dir: Path = Path("/cache/gradle")
    project_dir: Path = Path(".")
    manifest_files: str = ""

    # === Fingerprint / cache store ===
    fingerprint_schema: str = "v1"
    cache_populator: Literal["gradle", "command", "none"] = "gradle"
    populate_command: str = ""
    populate_timeout_seconds: float = 1800.0
    lock_timeout_seconds: float = 300.0

    # === Build metadata (set by the CI agent) ===
    ci_build_id: str = "0"
    ci_commit_sha: str = "unknown"
    ci_pipeline_id: str = "0"

    # === Metrics repository ===
    metrics_backend: Literal["postgres", "sqlite"] = "postgres"
    metrics_sqlite_path: Path = Path("~/.smartcache/metrics.db")
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "woodpecker"
    db_user: str = "woodpecker"
    db_password: str = ""
    db_connect_timeout_seconds: float = 5.0
    db_query_timeout_seconds: float = 30.0

    # === Effectiveness analysis ===
    analyze_window_days: int = 30
    spool_max_events: int = 1000

    # === Resource recommendation policy ===
    resource_branch: str = "main"
    resource_lookback_builds: int = 20
    resource_lookback_days: int = 30
    resource_min_samples: int = 5
    resource_high_confidence_samples: int = 20
    resource_cold_start: Literal["all_branches", "none"] = "all_branches"
    resource_percentile: float = 95.0
    resource_safety_margin: float = 0.2
    resource_oom_bias: float = 0.25
    resource_memory_rounding_mb: int = 256
    resource_min_memory_mb: int = 4096
    resource_max_memory_mb: int = 16384
    resource_min_cpu_cores: int = 2
    resource_max_cpu_cores: int = 8
    resource_jvm_heap_ratio: float = 0.7

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("resource_percentile")
    @classmethod
    def validate_percentile(cls, v: float) -> float:  # noqa: N805
        if not 0.0 < v <= 100.0:
            raise ValueError("resource_percentile must be in (0, 100]")
        return v

    @field_validator(
        "resource_safety_margin", "resource_oom_bias", "populate_timeout_seconds",
        "lock_timeout_seconds", "db_connect_timeout_seconds", "db_query_timeout_seconds",
    )
    @classmethod
    def validate_non_negative(cls, v: float) -> float:  # noqa: N805
        if v < 0:
            raise ValueError("value must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.resource_min_memory_mb > self.resource_max_memory_mb:
            errors.append("RESOURCE_MIN_MEMORY_MB must be <= RESOURCE_MAX_MEMORY_MB")

        if self.resource_min_cpu_cores > self.resource_max_cpu_cores:
            errors.append("RESOURCE_MIN_CPU_CORES must be <= RESOURCE_MAX_CPU_CORES")

        if self.resource_min_samples < 1:
            errors.append("RESOURCE_MIN_SAMPLES must be >= 1")

        if self.resource_high_confidence_samples < self.resource_min_samples:
            errors.append(
                "RESOURCE_HIGH_CONFIDENCE_SAMPLES must be >= RESOURCE_MIN_SAMPLES"
            )

        if self.resource_memory_rounding_mb < 1:
            errors.append("RESOURCE_MEMORY_ROUNDING_MB must be >= 1")

        if not 0.0 < self.resource_jvm_heap_ratio <= 1.0:
            errors.append("RESOURCE_JVM_HEAP_RATIO must be in (0, 1]")

        if self.cache_populator == "command" and not self.populate_command.strip():
            errors.append("CACHE_POPULATOR=command requires POPULATE_COMMAND")

        if self.analyze_window_days < 1:
            errors.append("ANALYZE_WINDOW_DAYS must be >= 1")

        if self.spool_max_events < 1:
            errors.append("SPOOL_MAX_EVENTS must be >= 1")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def manifest_files_list(self) -> list[str]:
        """Parse comma-separated manifest file override (relative to project_dir)."""
        return [f.strip() for f in self.manifest_files.split(",") if f.strip()]

    @property
    def metrics_sqlite_file(self) -> Path:
        return self.metrics_sqlite_path.expanduser()


def load_settings(**overrides: object) -> Settings:
    """Load settings from environment/.env with optional overrides.

    Args:
        **overrides: Field-level overrides (CLI flags, tests).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
