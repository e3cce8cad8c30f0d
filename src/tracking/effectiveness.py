# src/tracking/effectiveness.py — v2
"""Cache hit/miss tracking and effectiveness analysis.

Events are appended, never aggregated in place; every report is computed
from the raw events at read time, so concurrent writers and out-of-order
timestamps cannot corrupt it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from statistics import fmean

from smartcache.cache.models import CacheFingerprint
from smartcache.core.errors import InputError, NoDataError, TransientIOError
from smartcache.metrics.base_repository import BaseMetricsRepository
from smartcache.tracking.event_spool import EventSpool
from smartcache.tracking.models import CacheEvent, EffectivenessReport, TrackResult

logger = logging.getLogger(__name__)

VALID_OUTCOMES = ("hit", "miss")
EXCELLENT_HIT_RATE = 0.70
GOOD_HIT_RATE = 0.50
RECENT_EVENTS = 10


def rate_hit_rate(hit_rate: float | None) -> str | None:
    """Map a hit rate to excellent (> 70%), good (> 50%) or low."""
    if hit_rate is None:
        return None
    if hit_rate > EXCELLENT_HIT_RATE:
        return "excellent"
    if hit_rate > GOOD_HIT_RATE:
        return "good"
    return "low"


class EffectivenessTracker:
    """Records cache events and aggregates them into effectiveness reports."""

    def __init__(
        self,
        repository: BaseMetricsRepository,
        spool: EventSpool,
        fingerprint: Callable[[], CacheFingerprint],
        build_id: str = "0",
        commit_sha: str = "unknown",
    ) -> None:
        self.repository = repository
        self.spool = spool
        self._fingerprint = fingerprint
        self._build_id = build_id
        self._commit_sha = commit_sha

    async def track(self, outcome: str) -> TrackResult:
        """Append one hit/miss event for the current build.

        Unreachable metrics storage does not fail the build: the event is
        spooled locally and delivered by a later track call.

        Raises:
            InputError: outcome is not "hit" or "miss".
        """
        if outcome not in VALID_OUTCOMES:
            raise InputError(f"Invalid event type {outcome!r}: must be 'hit' or 'miss'")

        event = CacheEvent(
            build_id=self._build_id,
            commit_sha=self._commit_sha,
            fingerprint=self._fingerprint().value,
            outcome=outcome,
        )

        try:
            replayed = await self.spool.replay(self.repository)
            await self.repository.record_cache_event(event)
        except TransientIOError as e:
            logger.warning("Metrics store unavailable, spooling cache %s: %s", outcome, e)
            await self.spool.append(event)
            return TrackResult(event=event, delivered=False)

        logger.info("Cache %s tracked for build %s", outcome, event.build_id)
        return TrackResult(event=event, delivered=True, replayed=replayed)

    async def analyze(self, window_days: int = 30) -> EffectivenessReport:
        """Aggregate events of the last ``window_days`` days.

        Spooled events are delivered first so that builds tracked during an
        outage are counted. If the store is still unreachable the report
        fails rather than undercounting.

        Raises:
            InputError: window_days < 1.
            NoDataError: No events in the window.
            TransientIOError: Metrics store unreachable.
        """
        if window_days < 1:
            raise InputError(f"window_days must be >= 1, got {window_days}")

        await self.spool.replay(self.repository)

        since = datetime.now(timezone.utc) - timedelta(days=window_days)
        events = await self.repository.list_cache_events(since)
        if not events:
            raise NoDataError(f"cache events in the last {window_days} days")

        hits = sum(1 for e in events if e.outcome == "hit")
        misses = len(events) - hits
        hit_rate = hits / len(events)

        samples = await self.repository.get_build_samples(sorted({e.build_id for e in events}))
        durations: dict[str, float] = {}
        for sample in samples:
            durations.setdefault(sample.build_id, sample.duration_seconds)

        hit_durations = [durations[e.build_id] for e in events if e.outcome == "hit" and e.build_id in durations]
        miss_durations = [durations[e.build_id] for e in events if e.outcome == "miss" and e.build_id in durations]
        avg_hit = fmean(hit_durations) if hit_durations else None
        avg_miss = fmean(miss_durations) if miss_durations else None

        time_saved = None
        if avg_hit is not None and avg_miss is not None:
            time_saved = hits * (avg_miss - avg_hit)

        recent = sorted(events, key=lambda e: (e.timestamp, e.event_id), reverse=True)[:RECENT_EVENTS]

        report = EffectivenessReport(
            window_days=window_days,
            sample_count=len(events),
            hits=hits,
            misses=misses,
            hit_rate=hit_rate,
            avg_duration_with_hit=avg_hit,
            avg_duration_with_miss=avg_miss,
            joined_builds=len(hit_durations) + len(miss_durations),
            estimated_time_saved_seconds=time_saved,
            rating=rate_hit_rate(hit_rate),
            recent_events=recent,
        )
        logger.info(
            "Cache effectiveness over %d days: %d hits, %d misses (%.1f%%)",
            window_days, hits, misses, hit_rate * 100,
        )
        return report
