# src/metrics/sqlite_repository.py — v3
"""SQLite-based metrics repository (METRICS_BACKEND=sqlite).

Uses stdlib sqlite3, no external dependency. Intended for single-host
agents and local runs; WAL mode lets concurrent CLI processes append
without blocking readers. There are no resource_usage or failure_patterns
tables here, so only the build summary of the report queries is answered.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from smartcache.core.errors import TransientIOError
from smartcache.metrics.base_repository import BaseMetricsRepository
from smartcache.metrics.models import BuildMetricSample, BuildSummary
from smartcache.resources.models import ResourceRecommendation
from smartcache.tracking.models import CacheEvent

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS cache_events (
    event_id TEXT PRIMARY KEY,
    build_id TEXT NOT NULL,
    commit_sha TEXT,
    fingerprint TEXT,
    outcome TEXT NOT NULL CHECK (outcome IN ('hit', 'miss')),
    timestamp TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_cache_events_timestamp ON cache_events(timestamp);

CREATE TABLE IF NOT EXISTS build_samples (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    build_id TEXT NOT NULL,
    branch TEXT NOT NULL,
    duration_seconds REAL NOT NULL,
    peak_memory_mb REAL NOT NULL,
    cpu_cores_used REAL NOT NULL,
    result TEXT NOT NULL CHECK (result IN ('success', 'failure', 'oom')),
    timestamp TEXT NOT NULL,
    code_coverage REAL,
    test_count INTEGER
);
CREATE INDEX IF NOT EXISTS idx_build_samples_branch ON build_samples(branch, timestamp);
CREATE INDEX IF NOT EXISTS idx_build_samples_build ON build_samples(build_id);

CREATE TABLE IF NOT EXISTS resource_recommendations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    branch TEXT NOT NULL,
    memory_mb INTEGER NOT NULL,
    cpu_cores INTEGER NOT NULL,
    confidence TEXT NOT NULL,
    basis_sample_count INTEGER NOT NULL,
    data TEXT NOT NULL,
    created_at TEXT NOT NULL
);
"""

_SAMPLE_COLUMNS = (
    "build_id, branch, duration_seconds, peak_memory_mb, cpu_cores_used, result, timestamp, "
    "code_coverage, test_count"
)


def _ts(value: datetime) -> str:
    """Fixed-width UTC text so that string order equals time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")


def _parse_ts(text: str) -> datetime:
    return datetime.strptime(text, "%Y-%m-%dT%H:%M:%S.%f").replace(tzinfo=timezone.utc)


class SqliteMetricsRepository(BaseMetricsRepository):
    """SQLite-backed metrics repository."""

    def __init__(self, db_path: Path | str, timeout_s: float = 5.0) -> None:
        self._db_path = Path(db_path).expanduser()
        self._timeout_s = timeout_s
        self._conn: sqlite3.Connection | None = None

    async def record_cache_event(self, event: CacheEvent) -> None:
        self._write(
            """INSERT OR IGNORE INTO cache_events
               (event_id, build_id, commit_sha, fingerprint, outcome, timestamp)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                event.event_id,
                event.build_id,
                event.commit_sha,
                event.fingerprint,
                event.outcome,
                _ts(event.timestamp),
            ),
        )

    async def list_cache_events(self, since: datetime) -> list[CacheEvent]:
        rows = self._read(
            """SELECT event_id, build_id, commit_sha, fingerprint, outcome, timestamp
               FROM cache_events WHERE timestamp >= ?""",
            (_ts(since),),
        )
        return [
            CacheEvent(
                event_id=r[0], build_id=r[1], commit_sha=r[2] or "unknown",
                fingerprint=r[3] or "", outcome=r[4], timestamp=_parse_ts(r[5]),
            )
            for r in rows
        ]

    async def list_build_samples(
        self,
        branch: str | None = None,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[BuildMetricSample]:
        clauses: list[str] = []
        params: list[object] = []
        if branch is not None:
            clauses.append("branch = ?")
            params.append(branch)
        if since is not None:
            clauses.append("timestamp >= ?")
            params.append(_ts(since))
        sql = f"SELECT {_SAMPLE_COLUMNS} FROM build_samples"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY timestamp DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        return [self._to_sample(r) for r in self._read(sql, tuple(params))]

    async def get_build_samples(self, build_ids: list[str]) -> list[BuildMetricSample]:
        if not build_ids:
            return []
        unique = sorted(set(build_ids))
        placeholders = ",".join("?" for _ in unique)
        rows = self._read(
            f"SELECT {_SAMPLE_COLUMNS} FROM build_samples WHERE build_id IN ({placeholders})",
            tuple(unique),
        )
        return [self._to_sample(r) for r in rows]

    async def record_build_sample(self, sample: BuildMetricSample) -> None:
        self._write(
            f"INSERT INTO build_samples ({_SAMPLE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                sample.build_id,
                sample.branch,
                sample.duration_seconds,
                sample.peak_memory_mb,
                sample.cpu_cores_used,
                sample.result,
                _ts(sample.timestamp),
                sample.code_coverage,
                sample.test_count,
            ),
        )

    async def record_recommendation(self, recommendation: ResourceRecommendation) -> None:
        self._write(
            """INSERT INTO resource_recommendations
               (branch, memory_mb, cpu_cores, confidence, basis_sample_count, data, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                recommendation.branch,
                recommendation.memory_mb,
                recommendation.cpu_cores,
                recommendation.confidence,
                recommendation.basis_sample_count,
                recommendation.model_dump_json(),
                _ts(recommendation.generated_at),
            ),
        )

    async def summarize_builds(self, branch: str, since: datetime) -> BuildSummary | None:
        rows = self._read(
            """SELECT COUNT(*), AVG(duration_seconds), AVG(code_coverage), SUM(test_count)
               FROM build_samples
               WHERE branch = ? AND timestamp >= ? AND result = 'success'""",
            (branch, _ts(since)),
        )
        count, duration, coverage, tests = rows[0]
        if not count:
            return None
        return BuildSummary(
            build_count=count,
            avg_duration_seconds=duration,
            avg_code_coverage=coverage,
            total_test_count=tests,
        )

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                self._db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(str(self._db_path), timeout=self._timeout_s)
                conn.execute("PRAGMA journal_mode=WAL")
                conn.executescript(_SCHEMA)
            except (OSError, sqlite3.Error) as e:
                raise TransientIOError("metrics connect", f"{self._db_path}: {e}") from e
            self._conn = conn
            logger.debug("Opened metrics database %s", self._db_path)
        return self._conn

    def _write(self, sql: str, params: tuple) -> None:
        conn = self._connection()
        try:
            conn.execute(sql, params)
            conn.commit()
        except sqlite3.OperationalError as e:
            raise TransientIOError("metrics write", e) from e

    def _read(self, sql: str, params: tuple) -> list[tuple]:
        conn = self._connection()
        try:
            return conn.execute(sql, params).fetchall()
        except sqlite3.OperationalError as e:
            raise TransientIOError("metrics query", e) from e

    @staticmethod
    def _to_sample(row: tuple) -> BuildMetricSample:
        return BuildMetricSample(
            build_id=row[0],
            branch=row[1],
            duration_seconds=row[2],
            peak_memory_mb=row[3],
            cpu_cores_used=row[4],
            result=row[5],
            timestamp=_parse_ts(row[6]),
            code_coverage=row[7],
            test_count=row[8],
        )
