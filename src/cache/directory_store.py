# src/cache/directory_store.py — v1
"""Directory-backed cache store (the shared Gradle user home of the CI agents).

Commits are write-then-rename: the payload is populated in a private
staging directory, metadata is written into it last, and only then is it
renamed into place. Mutating methods must be called with the cache lock
held; reads are lock-free and only ever see a committed directory.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
from pathlib import Path

from smartcache.cache import layout
from smartcache.cache.base_cache_store import BaseCacheStore
from smartcache.cache.models import CacheEntry

logger = logging.getLogger(__name__)


class DirectoryCacheStore(BaseCacheStore):
    """File-system cache store rooted at ``cache_dir``."""

    def __init__(self, cache_dir: Path) -> None:
        self._root = Path(cache_dir).expanduser()

    @property
    def root(self) -> Path:
        return self._root

    @property
    def entry_dir(self) -> Path:
        return layout.entry_dir(self._root)

    async def get(self) -> CacheEntry | None:
        """Read committed metadata; a missing or corrupt file yields None."""
        path = layout.metadata_path(self._root)
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return CacheEntry(**data)
        except Exception as e:
            logger.warning("Unreadable cache metadata %s: %s", path, e)
            return None

    async def exists(self) -> bool:
        return self.entry_dir.is_dir()

    def new_staging(self) -> Path:
        self._root.mkdir(parents=True, exist_ok=True)
        staging = layout.new_staging_dir(self._root)
        staging.mkdir()
        return staging

    async def put(self, staging: Path, entry: CacheEntry) -> None:
        """Write metadata into ``staging`` and swap it in as the committed entry."""
        meta = staging / layout.METADATA_FILE
        tmp = meta.with_suffix(".tmp")
        tmp.write_text(entry.model_dump_json(indent=2), encoding="utf-8")
        os.replace(tmp, meta)

        trash: Path | None = None
        if self.entry_dir.exists():
            trash = layout.new_trash_dir(self._root)
            os.rename(self.entry_dir, trash)
        os.rename(staging, self.entry_dir)
        logger.debug("Committed cache entry %s", entry.fingerprint[:12])

        if trash is not None:
            shutil.rmtree(trash, ignore_errors=True)

    async def delete(self) -> bool:
        if not self.entry_dir.exists():
            return False
        trash = layout.new_trash_dir(self._root)
        os.rename(self.entry_dir, trash)
        shutil.rmtree(trash, ignore_errors=True)
        logger.debug("Evicted cache entry under %s", self._root)
        return True

    def discard(self, staging: Path) -> None:
        shutil.rmtree(staging, ignore_errors=True)

    def cleanup_leftovers(self) -> int:
        """Remove staging/trash directories of interrupted operations (lock held)."""
        leftovers = layout.leftover_dirs(self._root)
        for path in leftovers:
            logger.info("Removing leftover %s", path.name)
            shutil.rmtree(path, ignore_errors=True)
        return len(leftovers)

    def measure(self, path: Path) -> tuple[int, int]:
        size = 0
        count = 0
        for dirpath, _dirnames, filenames in os.walk(path):
            for name in filenames:
                try:
                    size += os.lstat(os.path.join(dirpath, name)).st_size
                except OSError:
                    continue
                count += 1
        return size, count
