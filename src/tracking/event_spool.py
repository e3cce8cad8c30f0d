# src/tracking/event_spool.py — v2
"""Local JSONL spool for cache events the metrics store could not accept.

Persisted in {cache_dir}/.cache-events.jsonl, one CacheEvent per line.
Appends and replays both hold the spool lock, so a replay never truncates
an event appended after it read the file. The spool is bounded: once it
holds ``max_events`` lines the oldest are dropped.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError

from smartcache.cache import layout
from smartcache.cache.locking import CacheLock
from smartcache.metrics.base_repository import BaseMetricsRepository
from smartcache.tracking.models import CacheEvent

logger = logging.getLogger(__name__)

DEFAULT_MAX_EVENTS = 1000
WARN_PENDING_EVENTS = 100


class EventSpool:
    """Append-only event spool with idempotent replay."""

    def __init__(
        self,
        path: Path,
        lock_path: Path,
        lock_timeout_s: float = 30.0,
        max_events: int = DEFAULT_MAX_EVENTS,
    ) -> None:
        if max_events < 1:
            raise ValueError("max_events must be >= 1")
        self.path = Path(path)
        self._lock_path = Path(lock_path)
        self._lock_timeout_s = lock_timeout_s
        self.max_events = max_events

    @classmethod
    def for_cache_dir(
        cls,
        cache_dir: Path,
        lock_timeout_s: float = 30.0,
        max_events: int = DEFAULT_MAX_EVENTS,
    ) -> EventSpool:
        return cls(
            layout.spool_path(cache_dir),
            layout.spool_lock_path(cache_dir),
            lock_timeout_s,
            max_events,
        )

    async def append(self, event: CacheEvent) -> None:
        """Persist one event locally, dropping the oldest when the spool is full."""
        async with CacheLock(self._lock_path, self._lock_timeout_s):
            self.path.parent.mkdir(parents=True, exist_ok=True)
            lines = self._lines()
            if len(lines) >= self.max_events:
                dropped = len(lines) - self.max_events + 1
                logger.error(
                    "Event spool %s is full (%d events); dropping the %d oldest. "
                    "The metrics store has not accepted events for a while.",
                    self.path, len(lines), dropped,
                )
                lines = lines[dropped:] + [event.model_dump_json()]
                tmp = self.path.with_suffix(".tmp")
                tmp.write_text("\n".join(lines) + "\n", encoding="utf-8")
                os.replace(tmp, self.path)
            else:
                with self.path.open("a", encoding="utf-8") as f:
                    f.write(event.model_dump_json() + "\n")
                if len(lines) + 1 >= WARN_PENDING_EVENTS:
                    logger.warning(
                        "Event spool %s holds %d undelivered events", self.path, len(lines) + 1,
                    )
        logger.debug("Spooled cache event %s", event.event_id)

    def pending(self) -> list[CacheEvent]:
        """Parse spooled events. Unreadable lines are logged and skipped."""
        if not self.path.exists():
            return []
        events: list[CacheEvent] = []
        for lineno, line in enumerate(self.path.read_text(encoding="utf-8").splitlines(), 1):
            if not line.strip():
                continue
            try:
                events.append(CacheEvent(**json.loads(line)))
            except (json.JSONDecodeError, TypeError, ValidationError) as e:
                logger.warning("Dropping malformed spool line %s:%d: %s", self.path, lineno, e)
        return events

    async def replay(self, repository: BaseMetricsRepository) -> int:
        """Push spooled events to the repository, then truncate the spool.

        Returns:
            Number of events replayed.

        Raises:
            TransientIOError: The repository rejected a write. The spool is
                left intact; events already delivered are ignored on the next
                replay because inserts are idempotent on event_id.
        """
        if not self.path.exists():
            return 0
        async with CacheLock(self._lock_path, self._lock_timeout_s):
            events = self.pending()
            for event in events:
                await repository.record_cache_event(event)
            self.path.write_text("", encoding="utf-8")
        if events:
            logger.info("Replayed %d spooled cache event(s)", len(events))
        return len(events)

    def _lines(self) -> list[str]:
        if not self.path.exists():
            return []
        return [line for line in self.path.read_text(encoding="utf-8").splitlines() if line.strip()]
