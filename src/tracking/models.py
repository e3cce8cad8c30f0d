# src/tracking/models.py — v2
"""Tracking domain models: CacheEvent, TrackResult and EffectivenessReport."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field

CacheOutcome = Literal["hit", "miss"]


class CacheEvent(BaseModel):
    """Hit/miss record for one build. Append-only."""

    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    build_id: str
    commit_sha: str = "unknown"
    fingerprint: str
    outcome: CacheOutcome
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class EffectivenessReport(BaseModel):
    """Cache effectiveness over a time window, aggregated at read time."""

    window_days: int
    sample_count: int
    hits: int
    misses: int
    hit_rate: float | None = None
    avg_duration_with_hit: float | None = None
    avg_duration_with_miss: float | None = None
    joined_builds: int = 0
    estimated_time_saved_seconds: float | None = None
    rating: Literal["excellent", "good", "low"] | None = None
    recent_events: list[CacheEvent] = []


class TrackResult(BaseModel):
    """Outcome of recording one cache event."""

    event: CacheEvent
    delivered: bool
    replayed: int = 0
