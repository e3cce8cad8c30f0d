# src/cache/models.py — v2
"""Cache domain models: CacheFingerprint, CacheEntry, CacheStatus and command results."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

CACHE_VERSION = "1.0"


class CacheState(str, Enum):
    """Committed state of the cache directory relative to the current fingerprint."""

    ABSENT = "ABSENT"
    PRESENT = "PRESENT"
    STALE = "STALE"


class CacheFingerprint(BaseModel):
    """Digest of the dependency declaration files, in declared order."""

    value: str = Field(pattern=r"^[0-9a-f]{64}$")
    schema_version: str
    files: list[str] = []

    def short(self) -> str:
        return self.value[:12]


class CacheEntry(BaseModel):
    """Metadata recorded alongside a populated cache directory."""

    fingerprint: str
    populated_at: datetime
    size_bytes: int = 0
    file_count: int = 0
    dependency_count: int = 0
    cache_version: str = CACHE_VERSION
    commit_sha: str = "unknown"
    build_id: str = "0"
    project_dir: str = ""


class CacheStatus(BaseModel):
    """Read-only view returned by the status command."""

    state: CacheState
    cache_dir: str
    current_fingerprint: CacheFingerprint
    stored_fingerprint: str | None = None
    entry: CacheEntry | None = None

    @property
    def is_fresh(self) -> bool:
        return self.state is CacheState.PRESENT


class WarmResult(BaseModel):
    """Outcome of a warm command."""

    action: Literal["warmed", "skipped"]
    previous_state: CacheState
    fingerprint: str
    entry: CacheEntry | None = None


class InvalidateResult(BaseModel):
    """Outcome of an invalidate command."""

    action: Literal["evicted", "refused", "noop"]
    previous_state: CacheState
    fingerprint: str
    forced: bool = False
