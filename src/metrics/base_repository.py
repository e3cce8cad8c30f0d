# src/metrics/base_repository.py — v2
"""Abstract metrics repository interface.

All writes are append-only inserts; readers aggregate at read time and must
not assume rows arrive in timestamp order.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING

from smartcache.metrics.models import (
    BuildMetricSample,
    BuildSummary,
    FailurePatternCount,
    ResourceEfficiency,
)
from smartcache.tracking.models import CacheEvent

if TYPE_CHECKING:
    from smartcache.resources.models import ResourceRecommendation


class BaseMetricsRepository(ABC):
    """Unified interface for build telemetry storage backends."""

    @abstractmethod
    async def record_cache_event(self, event: CacheEvent) -> None:
        """Append a cache event. Re-inserting the same event_id is a no-op."""

    @abstractmethod
    async def list_cache_events(self, since: datetime) -> list[CacheEvent]:
        """Cache events with timestamp >= since, in no guaranteed order."""

    @abstractmethod
    async def list_build_samples(
        self,
        branch: str | None = None,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[BuildMetricSample]:
        """Build samples, most recent first, optionally filtered.

        Args:
            branch: Restrict to one branch (None = all branches).
            since: Only samples with timestamp >= since.
            limit: Keep only the N most recent samples.
        """

    @abstractmethod
    async def get_build_samples(self, build_ids: list[str]) -> list[BuildMetricSample]:
        """Build samples for the given build ids (unknown ids are skipped)."""

    @abstractmethod
    async def record_build_sample(self, sample: BuildMetricSample) -> None:
        """Append a completed build sample."""

    @abstractmethod
    async def record_recommendation(self, recommendation: ResourceRecommendation) -> None:
        """Store an issued resource recommendation for later efficiency analysis."""

    # Read-only report queries. Backends without the underlying tables keep
    # these defaults.

    async def summarize_builds(self, branch: str, since: datetime) -> BuildSummary | None:
        """Duration, coverage and test totals of successful builds since ``since``."""
        return None

    async def resource_efficiency(self, since: datetime) -> ResourceEfficiency | None:
        """Average used/allocated ratios of builds since ``since``."""
        return None

    async def top_failure_patterns(
        self, since: datetime, limit: int = 5,
    ) -> list[FailurePatternCount]:
        """Most frequent failure patterns seen since ``since``, most frequent first."""
        return []

    def close(self) -> None:
        """Release connections. No-op by default."""
