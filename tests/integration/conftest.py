# tests/integration/conftest.py — v1
"""Shared fixtures for integration tests.

No external services: a realistic Gradle project tree on disk, the
SQLite metrics backend and the null populator stand in for the CI
agent's volume, PostgreSQL and ``./gradlew``.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

BUILD_GRADLE = """\
plugins {
    id("com.android.application") version "8.2.0" apply false
}
"""

APP_BUILD_GRADLE = """\
dependencies {
    implementation("androidx.core:core-ktx:1.12.0")
}
"""


@pytest.fixture
def gradle_project(tmp_path: Path) -> Path:
    """Android-style project with a root manifest, one module and the wrapper."""
    root = tmp_path / "android-app"
    (root / "app").mkdir(parents=True)
    (root / "gradle" / "wrapper").mkdir(parents=True)
    (root / "build.gradle.kts").write_text(BUILD_GRADLE, encoding="utf-8")
    (root / "settings.gradle.kts").write_text('include(":app")\n', encoding="utf-8")
    (root / "app" / "build.gradle.kts").write_text(APP_BUILD_GRADLE, encoding="utf-8")
    (root / "gradle" / "wrapper" / "gradle-wrapper.properties").write_text(
        "distributionUrl=https\\://services.gradle.org/distributions/gradle-8.5-bin.zip\n",
        encoding="utf-8",
    )
    return root


@pytest.fixture
def agent_env(tmp_path: Path, gradle_project: Path, monkeypatch):
    """CI agent environment for end-to-end CLI runs. Yields the cache directory."""
    cache_dir = tmp_path / "cache" / "gradle"
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("MANIFEST_FILES", raising=False)
    monkeypatch.setenv("CACHE_DIR", str(cache_dir))
    monkeypatch.setenv("PROJECT_DIR", str(gradle_project))
    monkeypatch.setenv("CACHE_POPULATOR", "none")
    monkeypatch.setenv("METRICS_BACKEND", "sqlite")
    monkeypatch.setenv("METRICS_SQLITE_PATH", str(tmp_path / "metrics.db"))
    monkeypatch.setenv("LOCK_TIMEOUT_SECONDS", "5")
    monkeypatch.setenv("CI_BUILD_ID", "900")
    monkeypatch.setenv("CI_COMMIT_SHA", "0badc0de")
    yield cache_dir
    root = logging.getLogger("smartcache")
    for handler in root.handlers:
        handler.close()
    root.handlers.clear()
