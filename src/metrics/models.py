# src/metrics/models.py — v2
"""Build telemetry models read from the metrics store."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

BuildResult = Literal["success", "failure", "oom"]

# Below this used/allocated ratio the allocation is flagged as oversized.
LOW_EFFICIENCY_THRESHOLD = 0.6


class BuildMetricSample(BaseModel):
    """One completed build as recorded by the CI metrics store."""

    build_id: str
    branch: str
    duration_seconds: float = Field(ge=0)
    peak_memory_mb: float = Field(ge=0)
    cpu_cores_used: float = Field(ge=0)
    result: BuildResult
    timestamp: datetime
    code_coverage: float | None = Field(default=None, ge=0, le=100)
    test_count: int | None = Field(default=None, ge=0)


class BuildSummary(BaseModel):
    """Aggregates over the successful builds of a branch."""

    build_count: int
    avg_duration_seconds: float | None = None
    avg_code_coverage: float | None = None
    total_test_count: int | None = None


class ResourceEfficiency(BaseModel):
    """How much of the allocated resources builds actually used.

    Efficiencies are used/allocated ratios (0.75 = 75% used).
    """

    sample_count: int
    memory_efficiency: float | None = None
    cpu_efficiency: float | None = None
    avg_peak_memory_gb: float | None = None
    avg_allocated_memory_gb: float | None = None

    @property
    def low_memory_efficiency(self) -> bool:
        return (
            self.memory_efficiency is not None
            and self.memory_efficiency < LOW_EFFICIENCY_THRESHOLD
        )


class FailurePatternCount(BaseModel):
    pattern_type: str
    severity: str
    count: int
