# src/cache/base_cache_store.py — v2
"""Abstract cache store interface.

A store holds at most one committed entry: the payload plus the CacheEntry
metadata describing which fingerprint it was populated for. Freshness is
decided by the caller by comparing fingerprints.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from smartcache.cache.models import CacheEntry


class BaseCacheStore(ABC):
    """Unified interface for cache storage backends."""

    @abstractmethod
    async def get(self) -> CacheEntry | None:
        """Return committed entry metadata, or None if missing or unreadable."""

    @abstractmethod
    async def exists(self) -> bool:
        """Whether a committed payload exists (with or without valid metadata)."""

    @abstractmethod
    def new_staging(self) -> Path:
        """Create and return an empty private staging location."""

    @abstractmethod
    async def put(self, staging: Path, entry: CacheEntry) -> None:
        """Commit a populated staging location with its metadata, replacing any entry."""

    @abstractmethod
    async def delete(self) -> bool:
        """Evict the committed entry. Returns False if there was nothing to remove."""

    @abstractmethod
    def discard(self, staging: Path) -> None:
        """Drop an uncommitted staging location."""

    @abstractmethod
    def measure(self, path: Path) -> tuple[int, int]:
        """Return (size_bytes, file_count) for a payload location."""

    def cleanup_leftovers(self) -> int:
        """Remove debris of interrupted operations. Called with the lock held."""
        return 0
