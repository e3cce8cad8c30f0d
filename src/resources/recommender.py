# src/resources/recommender.py — v2
"""Memory/CPU recommendations from historical build telemetry.

Memory is a high percentile of observed peak usage plus a safety margin,
never a maximum: a single outlier build must not dictate the allocation
of every later build. Builds that died with OutOfMemoryError are left out
of the percentile (their recorded peak is a lower bound, not a usage) and
instead put a floor above the largest memory that failed.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import datetime, timedelta, timezone

import numpy as np

from smartcache.config.settings import Settings
from smartcache.core.errors import InputError, NoDataError, TransientIOError
from smartcache.metrics.base_repository import BaseMetricsRepository
from smartcache.metrics.models import BuildMetricSample
from smartcache.resources.models import (
    Confidence,
    ResourceInsights,
    ResourcePolicy,
    ResourceRecommendation,
    SampleBasis,
)

logger = logging.getLogger(__name__)

_BRANCH_RE = re.compile(r"^[A-Za-z0-9._/-]+$")
MAX_BRANCH_LENGTH = 255
TOP_FAILURE_PATTERNS = 5


def validate_branch(branch: str) -> str:
    """Reject branch names that are not plain git ref names.

    Raises:
        InputError: Empty, too long, containing '..' or other characters.
    """
    if not branch:
        raise InputError("Branch name must not be empty")
    if len(branch) > MAX_BRANCH_LENGTH:
        raise InputError(f"Branch name exceeds {MAX_BRANCH_LENGTH} characters")
    if ".." in branch or not _BRANCH_RE.match(branch):
        raise InputError(f"Invalid branch name: {branch!r}")
    return branch


def policy_from_settings(settings: Settings) -> ResourcePolicy:
    return ResourcePolicy(
        lookback_builds=settings.resource_lookback_builds,
        lookback_days=settings.resource_lookback_days,
        min_samples=settings.resource_min_samples,
        high_confidence_samples=settings.resource_high_confidence_samples,
        cold_start=settings.resource_cold_start,
        percentile=settings.resource_percentile,
        safety_margin=settings.resource_safety_margin,
        oom_bias=settings.resource_oom_bias,
        memory_rounding_mb=settings.resource_memory_rounding_mb,
        min_memory_mb=settings.resource_min_memory_mb,
        max_memory_mb=settings.resource_max_memory_mb,
        min_cpu_cores=settings.resource_min_cpu_cores,
        max_cpu_cores=settings.resource_max_cpu_cores,
        jvm_heap_ratio=settings.resource_jvm_heap_ratio,
    )


def _ceil(value: float) -> int:
    # Round first so 5 * 1.2 == 6.000000000000001 does not become 7.
    return math.ceil(round(value, 6))


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def confidence_for(sample_count: int, policy: ResourcePolicy) -> Confidence:
    if sample_count < policy.min_samples:
        return "low"
    if sample_count >= policy.high_confidence_samples:
        return "high"
    return "medium"


def compute_recommendation(
    branch: str,
    samples: list[BuildMetricSample],
    policy: ResourcePolicy,
    basis: SampleBasis = "branch",
) -> ResourceRecommendation:
    """Derive a recommendation from an already selected sample set.

    Pure function: same samples and policy, same result (except
    generated_at).

    Raises:
        NoDataError: samples is empty.
    """
    if not samples:
        raise NoDataError(f"resource recommendation for branch {branch!r}")

    margin = 1.0 + policy.safety_margin
    usable = np.array([s.peak_memory_mb for s in samples if s.result != "oom"], dtype=np.float64)
    oom = [s.peak_memory_mb for s in samples if s.result == "oom"]

    memory_p: float | None = None
    mean_memory: float | None = None
    memory = 0.0
    if usable.size:
        memory_p = float(np.percentile(usable, policy.percentile, method="linear"))
        mean_memory = float(usable.mean())
        memory = memory_p * margin

    max_oom: float | None = None
    if oom:
        max_oom = max(oom)
        floor = max_oom * (1.0 + policy.oom_bias)
        if floor <= max_oom:
            floor = max_oom + 1.0
        if memory < floor:
            logger.info(
                "Raising memory above OOM at %.0f MB (%d OOM build(s))", max_oom, len(oom),
            )
            memory = floor

    step = policy.memory_rounding_mb
    memory_mb = _clamp(_ceil(memory / step) * step, policy.min_memory_mb, policy.max_memory_mb)
    if max_oom is not None and memory_mb <= max_oom:
        logger.warning(
            "Memory capped at %d MB, not above the %.0f MB that ran out of memory",
            memory_mb, max_oom,
        )

    cpu_values = np.array([s.cpu_cores_used for s in samples], dtype=np.float64)
    cpu_p = float(np.percentile(cpu_values, policy.percentile, method="linear"))
    cpu_cores = _clamp(_ceil(cpu_p * margin), policy.min_cpu_cores, policy.max_cpu_cores)

    return ResourceRecommendation(
        branch=branch,
        memory_mb=memory_mb,
        cpu_cores=cpu_cores,
        confidence=confidence_for(len(samples), policy),
        basis_sample_count=len(samples),
        basis=basis,
        memory_percentile_mb=memory_p,
        cpu_percentile=cpu_p,
        mean_memory_mb=mean_memory,
        oom_count=len(oom),
        max_oom_memory_mb=max_oom,
        jvm_heap_mb=int(memory_mb * policy.jvm_heap_ratio),
    )


class ResourceRecommender:
    """Selects the sample window and computes recommendations for a branch."""

    def __init__(self, repository: BaseMetricsRepository, policy: ResourcePolicy | None = None) -> None:
        self.repository = repository
        self.policy = policy or ResourcePolicy()

    @classmethod
    def from_settings(cls, settings: Settings, repository: BaseMetricsRepository) -> ResourceRecommender:
        return cls(repository, policy_from_settings(settings))

    async def recommend(
        self,
        branch: str,
        lookback_builds: int | None = None,
        lookback_days: int | None = None,
    ) -> ResourceRecommendation:
        """Recommend memory/CPU for ``branch``.

        Args:
            branch: Git branch name.
            lookback_builds: Override the build-count window.
            lookback_days: Override the time window.

        Raises:
            InputError: Invalid branch name or window.
            NoDataError: No samples even after cold-start fallback.
            TransientIOError: Metrics store unreachable.
        """
        validate_branch(branch)
        builds = self.policy.lookback_builds if lookback_builds is None else lookback_builds
        days = self.policy.lookback_days if lookback_days is None else lookback_days
        if builds < 1 or days < 1:
            raise InputError("Lookback windows must be >= 1")

        samples = await self._window(branch, builds, days)
        basis: SampleBasis = "branch"
        if len(samples) < self.policy.min_samples and self.policy.cold_start == "all_branches":
            pooled = await self._window(None, builds, days)
            if len(pooled) > len(samples):
                logger.info(
                    "Branch %s has %d sample(s); using %d samples across all branches",
                    branch, len(samples), len(pooled),
                )
                samples, basis = pooled, "all_branches"

        recommendation = compute_recommendation(branch, samples, self.policy, basis)
        logger.info(
            "Recommendation for %s: %d MB, %d cores (%s confidence, %d samples)",
            branch, recommendation.memory_mb, recommendation.cpu_cores,
            recommendation.confidence, recommendation.basis_sample_count,
        )
        return recommendation

    async def insights(self, branch: str, lookback_days: int | None = None) -> ResourceInsights:
        """Collect build performance, efficiency and failure context for a report.

        Best-effort: a part the metrics store cannot serve right now is left
        empty with a warning. Nothing here changes the recommendation.
        """
        days = self.policy.lookback_days if lookback_days is None else lookback_days
        since = datetime.now(timezone.utc) - timedelta(days=days)
        insights = ResourceInsights()
        try:
            insights.performance = await self.repository.summarize_builds(branch, since)
        except TransientIOError as e:
            logger.warning("Build summary unavailable: %s", e)
        try:
            insights.efficiency = await self.repository.resource_efficiency(since)
        except TransientIOError as e:
            logger.warning("Resource efficiency unavailable: %s", e)
        try:
            insights.failure_patterns = await self.repository.top_failure_patterns(
                since, limit=TOP_FAILURE_PATTERNS,
            )
        except TransientIOError as e:
            logger.warning("Failure patterns unavailable: %s", e)

        if insights.efficiency is not None and insights.efficiency.low_memory_efficiency:
            logger.warning(
                "Low memory efficiency (%.0f%% of allocation used)",
                insights.efficiency.memory_efficiency * 100,
            )
        return insights

    async def record(self, recommendation: ResourceRecommendation) -> bool:
        """Store the recommendation if the metrics store accepts it."""
        try:
            await self.repository.record_recommendation(recommendation)
        except TransientIOError as e:
            logger.warning("Could not record recommendation: %s", e)
            return False
        return True

    async def _window(self, branch: str | None, builds: int, days: int) -> list[BuildMetricSample]:
        """Last ``builds`` builds or last ``days`` days, whichever has more samples."""
        by_count = await self.repository.list_build_samples(branch=branch, limit=builds)
        since = datetime.now(timezone.utc) - timedelta(days=days)
        by_time = await self.repository.list_build_samples(branch=branch, since=since)
        return by_time if len(by_time) > len(by_count) else by_count
