# tests/conftest.py — v3
"""Shared test fixtures for all unit and integration tests.

Provides a throwaway Gradle-like project, cache directory, SQLite metrics
repository and sample builds. No external services: PostgreSQL and
subprocesses are mocked where needed.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from smartcache.cache.directory_store import DirectoryCacheStore
from smartcache.cache.layout import lock_path
from smartcache.cache.manager import CacheManager
from smartcache.metrics.models import BuildMetricSample
from smartcache.metrics.sqlite_repository import SqliteMetricsRepository



# === FIXTURES: Project and cache ===


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Minimal project with two dependency files."""
    project = tmp_path / "project"
    project.mkdir()
    (project / "build.txt").write_text("a", encoding="utf-8")
    (project / "lock.txt").write_text("b", encoding="utf-8")
    return project


@pytest.fixture
def manifest_files(project_dir: Path) -> list[Path]:
    return [project_dir / "build.txt", project_dir / "lock.txt"]


@pytest.fixture
def tmp_cache_dir(tmp_path: Path) -> Path:
    """Temporary cache directory (not created, like a fresh agent volume)."""
    return tmp_path / "cache"


@pytest.fixture
def cache_manager(tmp_cache_dir: Path, manifest_files: list[Path], project_dir: Path) -> CacheManager:
    """CacheManager with the null populator and a short lock timeout."""
    return CacheManager(
        store=DirectoryCacheStore(tmp_cache_dir),
        manifest_files=manifest_files,
        lock_path=lock_path(tmp_cache_dir),
        project_dir=project_dir,
        lock_timeout_s=2.0,
        build_id="101",
        commit_sha="abc1234",
    )


# === FIXTURES: Metrics ===


@pytest.fixture
def sqlite_repo(tmp_path: Path):
    repo = SqliteMetricsRepository(db_path=tmp_path / "metrics.db")
    yield repo
    repo.close()


def make_sample(
    build_id: str,
    peak_memory_mb: float = 4000.0,
    cpu: float = 2.0,
    result: str = "success",
    branch: str = "main",
    duration: float = 300.0,
    age_hours: float = 1.0,
    coverage: float | None = None,
    tests: int | None = None,
) -> BuildMetricSample:
    """BuildMetricSample helper; age is relative to the current time."""
    return BuildMetricSample(
        build_id=build_id,
        branch=branch,
        duration_seconds=duration,
        peak_memory_mb=peak_memory_mb,
        cpu_cores_used=cpu,
        result=result,
        timestamp=datetime.now(timezone.utc) - timedelta(hours=age_hours),
        code_coverage=coverage,
        test_count=tests,
    )


@pytest.fixture
def sample_factory():
    return make_sample
