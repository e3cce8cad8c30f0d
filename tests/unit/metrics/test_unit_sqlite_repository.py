# tests/unit/metrics/test_unit_sqlite_repository.py — v2
"""Tests for metrics/sqlite_repository.py — full functional tests (stdlib sqlite3)."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from smartcache.core.errors import TransientIOError
from smartcache.metrics.sqlite_repository import SqliteMetricsRepository
from smartcache.resources.models import ResourceRecommendation
from smartcache.tracking.models import CacheEvent


def _event(outcome: str = "hit", build_id: str = "1", **kw) -> CacheEvent:
    return CacheEvent(build_id=build_id, fingerprint="f" * 64, outcome=outcome, **kw)


class TestCacheEvents:
    @pytest.mark.asyncio
    async def test_record_and_list(self, sqlite_repo):
        await sqlite_repo.record_cache_event(_event("hit"))
        await sqlite_repo.record_cache_event(_event("miss", build_id="2"))
        events = await sqlite_repo.list_cache_events(datetime.now(timezone.utc) - timedelta(days=1))
        assert sorted(e.outcome for e in events) == ["hit", "miss"]

    @pytest.mark.asyncio
    async def test_duplicate_event_id_ignored(self, sqlite_repo):
        event = _event()
        await sqlite_repo.record_cache_event(event)
        await sqlite_repo.record_cache_event(event)
        events = await sqlite_repo.list_cache_events(datetime.now(timezone.utc) - timedelta(days=1))
        assert len(events) == 1
        assert events[0].event_id == event.event_id

    @pytest.mark.asyncio
    async def test_since_filter(self, sqlite_repo):
        old = datetime.now(timezone.utc) - timedelta(days=40)
        await sqlite_repo.record_cache_event(_event(timestamp=old))
        await sqlite_repo.record_cache_event(_event())
        events = await sqlite_repo.list_cache_events(datetime.now(timezone.utc) - timedelta(days=30))
        assert len(events) == 1

    @pytest.mark.asyncio
    async def test_naive_timestamp_treated_as_utc(self, sqlite_repo):
        naive = datetime(2026, 3, 1, 10, 0, 0)
        await sqlite_repo.record_cache_event(_event(timestamp=naive))
        events = await sqlite_repo.list_cache_events(datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc))
        assert events[0].timestamp == naive.replace(tzinfo=timezone.utc)


class TestBuildSamples:
    @pytest.mark.asyncio
    async def test_most_recent_first_with_limit(self, sqlite_repo, sample_factory):
        for i in range(5):
            await sqlite_repo.record_build_sample(sample_factory(str(i), age_hours=10 - i))
        samples = await sqlite_repo.list_build_samples(limit=3)
        assert [s.build_id for s in samples] == ["4", "3", "2"]

    @pytest.mark.asyncio
    async def test_branch_and_since_filters(self, sqlite_repo, sample_factory):
        await sqlite_repo.record_build_sample(sample_factory("1", branch="main"))
        await sqlite_repo.record_build_sample(sample_factory("2", branch="feature/x"))
        await sqlite_repo.record_build_sample(sample_factory("3", branch="main", age_hours=24 * 60))
        recent_main = await sqlite_repo.list_build_samples(
            branch="main", since=datetime.now(timezone.utc) - timedelta(days=30),
        )
        assert [s.build_id for s in recent_main] == ["1"]

    @pytest.mark.asyncio
    async def test_get_by_build_ids(self, sqlite_repo, sample_factory):
        await sqlite_repo.record_build_sample(sample_factory("10", result="oom", peak_memory_mb=8000))
        await sqlite_repo.record_build_sample(sample_factory("11"))
        samples = await sqlite_repo.get_build_samples(["10", "99", "10"])
        assert len(samples) == 1
        assert samples[0].result == "oom"
        assert samples[0].peak_memory_mb == 8000

    @pytest.mark.asyncio
    async def test_get_empty_ids(self, sqlite_repo):
        assert await sqlite_repo.get_build_samples([]) == []


class TestRecommendations:
    @pytest.mark.asyncio
    async def test_record(self, sqlite_repo):
        rec = ResourceRecommendation(
            branch="main", memory_mb=6144, cpu_cores=4, confidence="medium",
            basis_sample_count=8, jvm_heap_mb=4300,
        )
        await sqlite_repo.record_recommendation(rec)
        rows = sqlite_repo._read("SELECT branch, memory_mb FROM resource_recommendations", ())
        assert rows == [("main", 6144)]


class TestReportQueries:
    @pytest.mark.asyncio
    async def test_summarize_successful_builds(self, sqlite_repo, sample_factory):
        since = datetime.now(timezone.utc) - timedelta(days=30)
        await sqlite_repo.record_build_sample(sample_factory("1", duration=200, coverage=80.0, tests=100))
        await sqlite_repo.record_build_sample(sample_factory("2", duration=400, coverage=70.0, tests=120))
        await sqlite_repo.record_build_sample(sample_factory("3", duration=900, result="failure"))
        await sqlite_repo.record_build_sample(sample_factory("4", branch="develop"))
        summary = await sqlite_repo.summarize_builds("main", since)
        assert summary.build_count == 2
        assert summary.avg_duration_seconds == pytest.approx(300.0)
        assert summary.avg_code_coverage == pytest.approx(75.0)
        assert summary.total_test_count == 220

    @pytest.mark.asyncio
    async def test_summarize_without_builds(self, sqlite_repo):
        assert await sqlite_repo.summarize_builds("main", datetime.now(timezone.utc)) is None

    @pytest.mark.asyncio
    async def test_coverage_round_trips_on_samples(self, sqlite_repo, sample_factory):
        await sqlite_repo.record_build_sample(sample_factory("1", coverage=81.5, tests=42))
        sample = (await sqlite_repo.list_build_samples())[0]
        assert (sample.code_coverage, sample.test_count) == (81.5, 42)

    @pytest.mark.asyncio
    async def test_no_usage_tables(self, sqlite_repo):
        since = datetime.now(timezone.utc) - timedelta(days=30)
        assert await sqlite_repo.resource_efficiency(since) is None
        assert await sqlite_repo.top_failure_patterns(since) == []


class TestConnection:
    def test_construction_is_lazy(self, tmp_path):
        repo = SqliteMetricsRepository(db_path=tmp_path / "nested" / "m.db")
        assert not (tmp_path / "nested").exists()
        repo.close()

    @pytest.mark.asyncio
    async def test_unwritable_path_raises_transient(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x", encoding="utf-8")
        repo = SqliteMetricsRepository(db_path=blocker / "m.db")
        with pytest.raises(TransientIOError):
            await repo.record_cache_event(_event())

    def test_constraint_violation_is_not_transient(self, sqlite_repo):
        with pytest.raises(sqlite3.IntegrityError):
            sqlite_repo._write("INSERT INTO build_samples (build_id) VALUES (?)", ("x",))
