# src/resources/models.py — v2
"""Resource recommendation models: policy, recommendation and insights."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field

from smartcache.metrics.models import BuildSummary, FailurePatternCount, ResourceEfficiency

Confidence = Literal["low", "medium", "high"]
SampleBasis = Literal["branch", "all_branches"]


class ResourcePolicy(BaseModel):
    """Tunable constants of the recommendation algorithm."""

    lookback_builds: int = 20
    lookback_days: int = 30
    min_samples: int = 5
    high_confidence_samples: int = 20
    cold_start: Literal["all_branches", "none"] = "all_branches"
    percentile: float = Field(default=95.0, gt=0, le=100)
    safety_margin: float = Field(default=0.2, ge=0)
    oom_bias: float = Field(default=0.25, ge=0)
    memory_rounding_mb: int = Field(default=256, ge=1)
    min_memory_mb: int = 4096
    max_memory_mb: int = 16384
    min_cpu_cores: int = 2
    max_cpu_cores: int = 8
    jvm_heap_ratio: float = Field(default=0.7, gt=0, le=1)


class ResourceRecommendation(BaseModel):
    """Memory/CPU allocation derived from recent build telemetry."""

    branch: str
    memory_mb: int
    cpu_cores: int
    confidence: Confidence
    basis_sample_count: int
    basis: SampleBasis = "branch"
    memory_percentile_mb: float | None = None
    cpu_percentile: float | None = None
    mean_memory_mb: float | None = None
    oom_count: int = 0
    max_oom_memory_mb: float | None = None
    jvm_heap_mb: int
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def gradle_opts(self) -> str:
        return (
            f"-Xmx{self.jvm_heap_mb}m -XX:MaxMetaspaceSize=512m "
            "-XX:+HeapDumpOnOutOfMemoryError"
        )


class ResourceInsights(BaseModel):
    """Read-only context printed next to a recommendation.

    Each part is None (or empty) when the metrics store cannot provide it;
    none of it feeds the sizing algorithm.
    """

    performance: BuildSummary | None = None
    efficiency: ResourceEfficiency | None = None
    failure_patterns: list[FailurePatternCount] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return self.performance is None and self.efficiency is None and not self.failure_patterns
