# tests/unit/resources/test_unit_recommender.py — v2
"""Tests for resources/recommender.py — percentile sizing, OOM floor, windows."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import numpy as np
import pytest

from smartcache.config.settings import Settings
from smartcache.core.errors import InputError, NoDataError, TransientIOError
from smartcache.metrics.models import FailurePatternCount, ResourceEfficiency
from smartcache.resources.models import ResourcePolicy
from smartcache.resources.recommender import (
    ResourceRecommender,
    compute_recommendation,
    confidence_for,
    policy_from_settings,
    validate_branch,
)

POLICY = ResourcePolicy()


class TestValidateBranch:
    @pytest.mark.parametrize("branch", ["main", "feature/login-v2", "release/1.4.0", "fix_ABC-12"])
    def test_valid(self, branch):
        assert validate_branch(branch) == branch

    @pytest.mark.parametrize(
        "branch",
        ["", "main; DROP TABLE build_metrics", "a b", "../etc", "feat/..", "x" * 256, "ré"],
    )
    def test_invalid(self, branch):
        with pytest.raises(InputError):
            validate_branch(branch)


class TestComputeRecommendation:
    def test_outlier_does_not_dominate(self, sample_factory):
        peaks = [3000.0] * 19 + [15000.0]
        samples = [sample_factory(str(i), peak_memory_mb=m) for i, m in enumerate(peaks)]
        rec = compute_recommendation("main", samples, POLICY)
        p95 = float(np.percentile(peaks, 95))
        assert rec.memory_percentile_mb == pytest.approx(p95)
        assert rec.memory_mb >= rec.memory_percentile_mb
        assert rec.memory_mb > rec.mean_memory_mb
        assert rec.memory_mb < max(peaks) * 1.2

    def test_margin_rounding_and_heap(self, sample_factory):
        samples = [sample_factory(str(i), peak_memory_mb=5000.0, cpu=3.0) for i in range(10)]
        rec = compute_recommendation("main", samples, POLICY)
        # 5000 * 1.2 = 6000 -> next multiple of 256 is 6144
        assert rec.memory_mb == 6144
        assert rec.jvm_heap_mb == int(6144 * 0.7)
        assert "-Xmx4300m" in rec.gradle_opts
        # ceil(3 * 1.2) = 4
        assert rec.cpu_cores == 4

    def test_float_noise_does_not_round_up(self, sample_factory):
        samples = [sample_factory(str(i), cpu=5.0) for i in range(5)]
        assert compute_recommendation("main", samples, POLICY).cpu_cores == 6

    def test_clamped_to_bounds(self, sample_factory):
        low = [sample_factory(str(i), peak_memory_mb=100.0, cpu=0.5) for i in range(5)]
        high = [sample_factory(str(i), peak_memory_mb=40000.0, cpu=30.0) for i in range(5)]
        rec_low = compute_recommendation("main", low, POLICY)
        rec_high = compute_recommendation("main", high, POLICY)
        assert (rec_low.memory_mb, rec_low.cpu_cores) == (4096, 2)
        assert (rec_high.memory_mb, rec_high.cpu_cores) == (16384, 8)

    def test_recent_oom_raises_memory_above_it(self, sample_factory):
        samples = [sample_factory(str(i), peak_memory_mb=4000.0) for i in range(10)]
        samples.insert(0, sample_factory("oom", peak_memory_mb=7000.0, result="oom", age_hours=0.1))
        rec = compute_recommendation("main", samples, POLICY)
        assert rec.oom_count == 1
        assert rec.max_oom_memory_mb == 7000.0
        assert rec.memory_mb > 7000
        assert rec.memory_mb >= 7000 * 1.25

    def test_oom_without_bias_still_strictly_above(self, sample_factory):
        policy = ResourcePolicy(oom_bias=0.0)
        samples = [sample_factory("1", peak_memory_mb=6144.0, result="oom")]
        rec = compute_recommendation("main", samples, policy)
        assert rec.memory_mb > 6144
        assert rec.memory_percentile_mb is None

    def test_oom_excluded_from_percentile(self, sample_factory):
        samples = [sample_factory(str(i), peak_memory_mb=4000.0) for i in range(5)]
        samples.append(sample_factory("x", peak_memory_mb=9000.0, result="oom"))
        rec = compute_recommendation("main", samples, POLICY)
        assert rec.memory_percentile_mb == pytest.approx(4000.0)

    def test_empty_is_no_data(self):
        with pytest.raises(NoDataError):
            compute_recommendation("main", [], POLICY)

    def test_confidence_levels(self):
        assert confidence_for(4, POLICY) == "low"
        assert confidence_for(5, POLICY) == "medium"
        assert confidence_for(19, POLICY) == "medium"
        assert confidence_for(20, POLICY) == "high"


class TestResourceRecommender:
    @pytest.mark.asyncio
    async def test_uses_branch_samples(self, sqlite_repo, sample_factory):
        for i in range(6):
            await sqlite_repo.record_build_sample(sample_factory(str(i), branch="develop", peak_memory_mb=5000))
        rec = await ResourceRecommender(sqlite_repo).recommend("develop")
        assert rec.basis == "branch"
        assert rec.basis_sample_count == 6
        assert rec.confidence == "medium"

    @pytest.mark.asyncio
    async def test_cold_start_pools_all_branches(self, sqlite_repo, sample_factory):
        await sqlite_repo.record_build_sample(sample_factory("1", branch="feature/new"))
        for i in range(2, 10):
            await sqlite_repo.record_build_sample(sample_factory(str(i), branch="main"))
        rec = await ResourceRecommender(sqlite_repo).recommend("feature/new")
        assert rec.basis == "all_branches"
        assert rec.basis_sample_count == 9
        assert rec.branch == "feature/new"

    @pytest.mark.asyncio
    async def test_cold_start_disabled(self, sqlite_repo, sample_factory):
        await sqlite_repo.record_build_sample(sample_factory("1", branch="feature/new"))
        await sqlite_repo.record_build_sample(sample_factory("2", branch="main"))
        policy = ResourcePolicy(cold_start="none")
        rec = await ResourceRecommender(sqlite_repo, policy).recommend("feature/new")
        assert rec.basis == "branch"
        assert rec.confidence == "low"

    @pytest.mark.asyncio
    async def test_window_takes_larger_of_count_and_days(self, sqlite_repo, sample_factory):
        # 25 builds in the last day, 5 older ones: the 30-day window wins over 20 builds.
        for i in range(25):
            await sqlite_repo.record_build_sample(sample_factory(f"r{i}", age_hours=1 + i * 0.1))
        for i in range(5):
            await sqlite_repo.record_build_sample(sample_factory(f"o{i}", age_hours=24 * 60))
        rec = await ResourceRecommender(sqlite_repo).recommend("main")
        assert rec.basis_sample_count == 25

        by_count = await ResourceRecommender(sqlite_repo).recommend("main", lookback_days=1, lookback_builds=28)
        assert by_count.basis_sample_count == 28

    @pytest.mark.asyncio
    async def test_no_samples_is_no_data(self, sqlite_repo):
        with pytest.raises(NoDataError):
            await ResourceRecommender(sqlite_repo).recommend("main")

    @pytest.mark.asyncio
    async def test_invalid_branch_before_io(self):
        repo = AsyncMock()
        with pytest.raises(InputError):
            await ResourceRecommender(repo).recommend("bad branch")
        repo.list_build_samples.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_window(self):
        with pytest.raises(InputError):
            await ResourceRecommender(AsyncMock()).recommend("main", lookback_days=0)

    @pytest.mark.asyncio
    async def test_unreachable_repository_propagates(self):
        repo = AsyncMock()
        repo.list_build_samples.side_effect = TransientIOError("list build samples", "down")
        with pytest.raises(TransientIOError):
            await ResourceRecommender(repo).recommend("main")

    @pytest.mark.asyncio
    async def test_record_is_best_effort(self, sample_factory):
        repo = AsyncMock()
        repo.record_recommendation.side_effect = TransientIOError("record recommendation", "down")
        rec = compute_recommendation("main", [sample_factory("1")], POLICY)
        assert await ResourceRecommender(repo).record(rec) is False


class TestInsights:
    @pytest.mark.asyncio
    async def test_collects_all_parts(self, sqlite_repo, sample_factory):
        await sqlite_repo.record_build_sample(sample_factory("1", duration=240, coverage=70.0, tests=90))
        insights = await ResourceRecommender(sqlite_repo).insights("main")
        assert insights.performance.build_count == 1
        assert insights.performance.avg_duration_seconds == pytest.approx(240.0)
        assert insights.efficiency is None
        assert insights.failure_patterns == []

    @pytest.mark.asyncio
    async def test_queries_use_lookback_days(self):
        repo = AsyncMock()
        repo.summarize_builds.return_value = None
        repo.resource_efficiency.return_value = None
        repo.top_failure_patterns.return_value = [
            FailurePatternCount(pattern_type="OutOfMemoryError", severity="critical", count=2),
        ]
        insights = await ResourceRecommender(repo).insights("main", lookback_days=7)
        branch, since = repo.summarize_builds.call_args.args
        assert branch == "main"
        assert 6.9 < (datetime.now(timezone.utc) - since).total_seconds() / 86400 < 7.1
        assert repo.top_failure_patterns.call_args.kwargs == {"limit": 5}
        assert insights.failure_patterns[0].count == 2

    @pytest.mark.asyncio
    async def test_unavailable_parts_left_empty(self, caplog):
        repo = AsyncMock()
        repo.summarize_builds.side_effect = TransientIOError("summarize builds", "down")
        repo.resource_efficiency.return_value = ResourceEfficiency(sample_count=4, memory_efficiency=0.4)
        repo.top_failure_patterns.side_effect = TransientIOError("top failure patterns", "down")
        with caplog.at_level("WARNING", logger="smartcache.resources.recommender"):
            insights = await ResourceRecommender(repo).insights("main")
        assert insights.performance is None
        assert insights.failure_patterns == []
        assert insights.efficiency.low_memory_efficiency is True
        assert "Build summary unavailable" in caplog.text
        assert "Low memory efficiency (40%" in caplog.text


class TestPolicyFromSettings:
    def test_maps_fields(self):
        s = Settings(_env_file=None, resource_percentile=90, resource_max_cpu_cores=16)
        policy = policy_from_settings(s)
        assert policy.percentile == 90
        assert policy.max_cpu_cores == 16
        assert policy.min_memory_mb == 4096
