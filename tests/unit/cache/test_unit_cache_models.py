# tests/unit/cache/test_unit_cache_models.py — v1
"""Tests for cache/models.py — fingerprint, entry and status models."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from smartcache.cache.base_cache_store import BaseCacheStore
from smartcache.cache.models import (
    CACHE_VERSION,
    CacheEntry,
    CacheFingerprint,
    CacheState,
    CacheStatus,
)


class TestCacheFingerprint:
    def test_rejects_non_hex(self):
        with pytest.raises(ValidationError):
            CacheFingerprint(value="XYZ", schema_version="v1")

    def test_rejects_uppercase(self):
        with pytest.raises(ValidationError):
            CacheFingerprint(value="A" * 64, schema_version="v1")


class TestCacheEntry:
    def test_defaults(self):
        entry = CacheEntry(fingerprint="f" * 64, populated_at=datetime.now(timezone.utc))
        assert entry.cache_version == CACHE_VERSION
        assert entry.commit_sha == "unknown"
        assert entry.dependency_count == 0

    def test_json_roundtrip(self):
        entry = CacheEntry(
            fingerprint="f" * 64,
            populated_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
            size_bytes=2048,
            commit_sha="deadbeef",
        )
        assert CacheEntry.model_validate_json(entry.model_dump_json()) == entry


class TestCacheStatus:
    @pytest.mark.parametrize(
        ("state", "fresh"),
        [(CacheState.ABSENT, False), (CacheState.STALE, False), (CacheState.PRESENT, True)],
    )
    def test_is_fresh(self, state, fresh):
        status = CacheStatus(
            state=state,
            cache_dir="/cache/gradle",
            current_fingerprint=CacheFingerprint(value="0" * 64, schema_version="v1"),
        )
        assert status.is_fresh is fresh


class TestBaseCacheStore:
    def test_is_abstract(self):
        with pytest.raises(TypeError):
            BaseCacheStore()  # type: ignore[abstract]

    def test_interface_methods(self):
        for method in ["get", "exists", "new_staging", "put", "delete", "discard", "measure"]:
            assert method in BaseCacheStore.__abstractmethods__
