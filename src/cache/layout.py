# src/cache/layout.py — v1
"""Cache directory structure definition.

{cache_dir}/
    entry/                     committed payload (GRADLE_USER_HOME of builds)
        .cache-metadata.json   CacheEntry, written last during warm
    .cache-lock                advisory lock for warm/invalidate
    .cache-events.jsonl        spooled CacheEvents awaiting the metrics store
    .staging-<id>/             in-progress warm, swapped into entry/
    .trash-<id>/               evicted payload awaiting removal
"""

from __future__ import annotations

import uuid
from pathlib import Path

ENTRY_DIR = "entry"
METADATA_FILE = ".cache-metadata.json"
LOCK_FILE = ".cache-lock"
SPOOL_FILE = ".cache-events.jsonl"
SPOOL_LOCK_FILE = ".cache-events.lock"
STAGING_PREFIX = ".staging-"
TRASH_PREFIX = ".trash-"


def entry_dir(cache_dir: Path) -> Path:
    """Return the committed payload directory."""
    return cache_dir / ENTRY_DIR


def metadata_path(cache_dir: Path) -> Path:
    """Return the committed metadata file."""
    return entry_dir(cache_dir) / METADATA_FILE


def lock_path(cache_dir: Path) -> Path:
    return cache_dir / LOCK_FILE


def spool_path(cache_dir: Path) -> Path:
    return cache_dir / SPOOL_FILE


def spool_lock_path(cache_dir: Path) -> Path:
    return cache_dir / SPOOL_LOCK_FILE


def new_staging_dir(cache_dir: Path) -> Path:
    """Return a fresh, not yet created, staging directory path."""
    return cache_dir / f"{STAGING_PREFIX}{uuid.uuid4().hex[:12]}"


def new_trash_dir(cache_dir: Path) -> Path:
    """Return a fresh, not yet created, trash directory path."""
    return cache_dir / f"{TRASH_PREFIX}{uuid.uuid4().hex[:12]}"


def leftover_dirs(cache_dir: Path) -> list[Path]:
    """List staging/trash directories left behind by interrupted operations."""
    if not cache_dir.is_dir():
        return []
    return sorted(
        p for p in cache_dir.iterdir()
        if p.is_dir() and p.name.startswith((STAGING_PREFIX, TRASH_PREFIX))
    )
