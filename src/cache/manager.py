# src/cache/manager.py — v1
"""Cache decisions: warm, status, invalidate and freshness check.

State is derived, never tracked: the committed entry is PRESENT when its
recorded fingerprint equals the freshly computed one, STALE when a payload
exists without matching readable metadata, ABSENT otherwise. The metrics
store is never consulted here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from smartcache.cache import layout
from smartcache.cache.base_cache_store import BaseCacheStore
from smartcache.cache.directory_store import DirectoryCacheStore
from smartcache.cache.fingerprint import compute_fingerprint, resolve_manifest_files
from smartcache.cache.locking import CacheLock
from smartcache.cache.models import (
    CacheEntry,
    CacheFingerprint,
    CacheState,
    CacheStatus,
    InvalidateResult,
    WarmResult,
)
from smartcache.cache.populator import BaseDependencyPopulator, NullPopulator, create_populator
from smartcache.config.settings import Settings
from smartcache.core.errors import TransientIOError

logger = logging.getLogger(__name__)


class CacheManager:
    """Service running the cache state machine against one store."""

    def __init__(
        self,
        store: BaseCacheStore,
        manifest_files: list[Path],
        lock_path: Path,
        populator: BaseDependencyPopulator | None = None,
        project_dir: Path = Path("."),
        schema_version: str = "v1",
        lock_timeout_s: float = 300.0,
        build_id: str = "0",
        commit_sha: str = "unknown",
    ) -> None:
        self.store = store
        self.manifest_files = list(manifest_files)
        self.populator = populator or NullPopulator()
        self.project_dir = Path(project_dir)
        self.schema_version = schema_version
        self._lock_path = Path(lock_path)
        self._lock_timeout_s = lock_timeout_s
        self._build_id = build_id
        self._commit_sha = commit_sha

    @classmethod
    def from_settings(cls, settings: Settings) -> CacheManager:
        """Build a manager from settings; nothing below this reads configuration."""
        cache_dir = settings.cache_dir.expanduser()
        project_dir = settings.project_dir.expanduser()
        return cls(
            store=DirectoryCacheStore(cache_dir),
            manifest_files=resolve_manifest_files(project_dir, settings.manifest_files_list),
            lock_path=layout.lock_path(cache_dir),
            populator=create_populator(
                settings.cache_populator,
                timeout_s=settings.populate_timeout_seconds,
                command=settings.populate_command,
            ),
            project_dir=project_dir,
            schema_version=settings.fingerprint_schema,
            lock_timeout_s=settings.lock_timeout_seconds,
            build_id=settings.ci_build_id,
            commit_sha=settings.ci_commit_sha,
        )

    def fingerprint(self) -> CacheFingerprint:
        return compute_fingerprint(self.manifest_files, self.schema_version)

    async def status(self) -> CacheStatus:
        """Report state and entry metadata. Lock-free and read-only."""
        fp = self.fingerprint()
        state, entry = await self._state(fp)
        return CacheStatus(
            state=state,
            cache_dir=str(self._lock_path.parent),
            current_fingerprint=fp,
            stored_fingerprint=entry.fingerprint if entry else None,
            entry=entry,
        )

    async def check(self) -> bool:
        """True when the committed cache matches the current fingerprint."""
        status = await self.status()
        return status.is_fresh

    async def warm(self) -> WarmResult:
        """Populate the cache for the current fingerprint unless already PRESENT.

        Raises:
            TransientIOError: Populate failure, timeout or lock timeout. The
                previously committed entry is left untouched.
        """
        fp = self.fingerprint()
        state, entry = await self._state(fp)
        if state is CacheState.PRESENT:
            logger.info("Cache already warm for %s", fp.short())
            return WarmResult(action="skipped", previous_state=state, fingerprint=fp.value, entry=entry)

        async with CacheLock(self._lock_path, self._lock_timeout_s):
            # Another agent may have warmed while we waited.
            state, entry = await self._state(fp)
            if state is CacheState.PRESENT:
                logger.info("Cache warmed concurrently for %s", fp.short())
                return WarmResult(action="skipped", previous_state=state, fingerprint=fp.value, entry=entry)

            self.store.cleanup_leftovers()
            logger.info("Warming cache for %s (was %s)", fp.short(), state.value)
            staging = self.store.new_staging()
            try:
                await self.populator.populate(staging, self.project_dir)
                size_bytes, file_count = self.store.measure(staging)
                new_entry = CacheEntry(
                    fingerprint=fp.value,
                    populated_at=datetime.now(timezone.utc),
                    size_bytes=size_bytes,
                    file_count=file_count,
                    dependency_count=self.populator.count_dependencies(staging),
                    commit_sha=self._commit_sha,
                    build_id=self._build_id,
                    project_dir=str(self.project_dir),
                )
                await self.store.put(staging, new_entry)
            except OSError as e:
                self.store.discard(staging)
                raise TransientIOError("warm", e) from e
            except BaseException:
                self.store.discard(staging)
                raise

        logger.info(
            "Cache warmed: %s (%d files, %d dependencies)",
            fp.short(), new_entry.file_count, new_entry.dependency_count,
        )
        return WarmResult(action="warmed", previous_state=state, fingerprint=fp.value, entry=new_entry)

    async def invalidate(self, force: bool = False) -> InvalidateResult:
        """Evict a STALE entry, or a PRESENT one when forced. ABSENT is a no-op."""
        fp = self.fingerprint()
        state, _ = await self._state(fp)
        if state is CacheState.ABSENT:
            logger.info("Nothing to invalidate: no cache entry")
            return InvalidateResult(action="noop", previous_state=state, fingerprint=fp.value, forced=force)

        async with CacheLock(self._lock_path, self._lock_timeout_s):
            state, _ = await self._state(fp)
            if state is CacheState.ABSENT:
                return InvalidateResult(action="noop", previous_state=state, fingerprint=fp.value, forced=force)
            if state is CacheState.PRESENT and not force:
                logger.info("Cache is valid, dependencies unchanged; use --force to evict")
                return InvalidateResult(action="refused", previous_state=state, fingerprint=fp.value)

            if state is CacheState.PRESENT:
                logger.warning("Forced invalidation of a fresh cache")
            try:
                await self.store.delete()
                self.store.cleanup_leftovers()
            except OSError as e:
                raise TransientIOError("invalidate", e) from e

        logger.info("Cache invalidated (was %s); next build repopulates it", state.value)
        return InvalidateResult(action="evicted", previous_state=state, fingerprint=fp.value, forced=force)

    async def _state(self, fp: CacheFingerprint) -> tuple[CacheState, CacheEntry | None]:
        if not await self.store.exists():
            return CacheState.ABSENT, None
        entry = await self.store.get()
        if entry is None or entry.fingerprint != fp.value:
            return CacheState.STALE, entry
        return CacheState.PRESENT, entry
