# src/metrics/postgres_repository.py — v3
"""PostgreSQL metrics repository (METRICS_BACKEND=postgres).

Requires 'psycopg' package: pip install "psycopg[binary]".
Reads the CI telemetry tables (build_metrics, resource_usage,
failure_patterns) and appends to cache_events. The schema is owned by the
pipeline database; this module never creates or migrates tables. The
cache_events table it appends to is:

    CREATE TABLE cache_events (
        event_id TEXT PRIMARY KEY,
        build_id TEXT NOT NULL,
        commit_sha TEXT,
        fingerprint TEXT,
        outcome TEXT NOT NULL CHECK (outcome IN ('hit', 'miss')),
        timestamp TIMESTAMPTZ NOT NULL
    );

Only OperationalError (refused connection, connect or statement timeout)
becomes TransientIOError. Schema and programming errors propagate, so a
missing table fails the command instead of spooling events forever.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from smartcache.core.errors import TransientIOError
from smartcache.metrics.base_repository import BaseMetricsRepository
from smartcache.metrics.models import (
    BuildMetricSample,
    BuildSummary,
    FailurePatternCount,
    ResourceEfficiency,
)
from smartcache.resources.models import ResourceRecommendation
from smartcache.tracking.models import CacheEvent

logger = logging.getLogger(__name__)

# Peak memory comes from the latest resource_usage row of the build; a
# recorded OutOfMemoryError pattern marks the build as an OOM.
_SAMPLE_QUERY = """
SELECT bm.build_id::text,
       bm.branch,
       bm.duration_seconds,
       COALESCE(ru.peak_memory_gb, bm.memory_gb, 0) * 1024,
       COALESCE(bm.cpu_cores, 0),
       bm.success,
       EXISTS (
           SELECT 1 FROM failure_patterns fp
           WHERE fp.build_id = bm.id AND fp.pattern_type ILIKE '%%OutOfMemory%%'
       ),
       bm.timestamp
FROM build_metrics bm
LEFT JOIN LATERAL (
    SELECT r.peak_memory_gb FROM resource_usage r
    WHERE r.build_id = bm.id AND r.peak_memory_gb IS NOT NULL
    ORDER BY r.timestamp DESC LIMIT 1
) ru ON TRUE
"""


class PostgresMetricsRepository(BaseMetricsRepository):
    """PostgreSQL-backed repository over the shared CI metrics database."""

    def __init__(
        self,
        host: str,
        port: int,
        dbname: str,
        user: str,
        password: str = "",
        connect_timeout_s: int = 5,
        query_timeout_s: int = 30,
    ) -> None:
        try:
            import psycopg
        except ImportError as e:
            raise ImportError(
                'psycopg package required: pip install "psycopg[binary]"'
            ) from e

        self._psycopg = psycopg
        self._conninfo = {
            "host": host,
            "port": port,
            "dbname": dbname,
            "user": user,
            "password": password,
            "connect_timeout": connect_timeout_s,
            "options": f"-c statement_timeout={int(query_timeout_s * 1000)}",
        }
        self._conn: Any = None

    async def record_cache_event(self, event: CacheEvent) -> None:
        self._execute(
            """INSERT INTO cache_events
               (event_id, build_id, commit_sha, fingerprint, outcome, timestamp)
               VALUES (%s, %s, %s, %s, %s, %s)
               ON CONFLICT (event_id) DO NOTHING""",
            (
                event.event_id,
                event.build_id,
                event.commit_sha,
                event.fingerprint,
                event.outcome,
                event.timestamp,
            ),
            operation="record cache event",
        )

    async def list_cache_events(self, since: datetime) -> list[CacheEvent]:
        rows = self._query(
            """SELECT event_id, build_id, commit_sha, fingerprint, outcome, timestamp
               FROM cache_events WHERE timestamp >= %s""",
            (since,),
            operation="list cache events",
        )
        return [
            CacheEvent(
                event_id=r[0], build_id=str(r[1]), commit_sha=r[2] or "unknown",
                fingerprint=r[3] or "", outcome=r[4], timestamp=_aware(r[5]),
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
        params: list[Any] = []
        if branch is not None:
            clauses.append("bm.branch = %s")
            params.append(branch)
        if since is not None:
            clauses.append("bm.timestamp >= %s")
            params.append(since)
        sql = _SAMPLE_QUERY
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY bm.timestamp DESC"
        if limit is not None:
            sql += " LIMIT %s"
            params.append(int(limit))
        rows = self._query(sql, tuple(params), operation="list build samples")
        return [_to_sample(r) for r in rows]

    async def get_build_samples(self, build_ids: list[str]) -> list[BuildMetricSample]:
        numeric = sorted({int(b) for b in build_ids if str(b).isdigit()})
        if not numeric:
            return []
        rows = self._query(
            _SAMPLE_QUERY + " WHERE bm.build_id = ANY(%s)",
            (numeric,),
            operation="get build samples",
        )
        return [_to_sample(r) for r in rows]

    async def record_build_sample(self, sample: BuildMetricSample) -> None:
        self._execute(
            """INSERT INTO build_metrics
               (build_id, branch, duration_seconds, memory_gb, cpu_cores,
                code_coverage, test_count, success, timestamp)
               VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)""",
            (
                int(sample.build_id),
                sample.branch,
                sample.duration_seconds,
                round(sample.peak_memory_mb / 1024, 3),
                sample.cpu_cores_used,
                sample.code_coverage,
                sample.test_count,
                sample.result == "success",
                sample.timestamp,
            ),
            operation="record build sample",
        )

    async def record_recommendation(self, recommendation: ResourceRecommendation) -> None:
        self._execute(
            """INSERT INTO resource_usage
               (allocated_memory_gb, allocated_cpu_cores, timestamp)
               VALUES (%s, %s, %s)""",
            (
                round(recommendation.memory_mb / 1024, 2),
                recommendation.cpu_cores,
                recommendation.generated_at,
            ),
            operation="record recommendation",
        )

    async def summarize_builds(self, branch: str, since: datetime) -> BuildSummary | None:
        rows = self._query(
            """SELECT COUNT(*), AVG(duration_seconds), AVG(code_coverage), SUM(test_count)
               FROM build_metrics
               WHERE branch = %s AND timestamp >= %s AND success = true""",
            (branch, since),
            operation="summarize builds",
        )
        if not rows or not rows[0][0]:
            return None
        count, duration, coverage, tests = rows[0]
        return BuildSummary(
            build_count=int(count),
            avg_duration_seconds=_opt_float(duration),
            avg_code_coverage=_opt_float(coverage),
            total_test_count=None if tests is None else int(tests),
        )

    async def resource_efficiency(self, since: datetime) -> ResourceEfficiency | None:
        rows = self._query(
            """SELECT COUNT(*), AVG(memory_efficiency), AVG(cpu_efficiency),
                      AVG(peak_memory_gb), AVG(allocated_memory_gb)
               FROM resource_usage
               WHERE timestamp >= %s AND peak_memory_gb IS NOT NULL""",
            (since,),
            operation="resource efficiency",
        )
        if not rows or not rows[0][0]:
            return None
        count, memory, cpu, peak, allocated = rows[0]
        return ResourceEfficiency(
            sample_count=int(count),
            memory_efficiency=_opt_float(memory),
            cpu_efficiency=_opt_float(cpu),
            avg_peak_memory_gb=_opt_float(peak),
            avg_allocated_memory_gb=_opt_float(allocated),
        )

    async def top_failure_patterns(
        self, since: datetime, limit: int = 5,
    ) -> list[FailurePatternCount]:
        rows = self._query(
            """SELECT pattern_type, severity, COUNT(*) AS occurrences
               FROM failure_patterns
               WHERE last_seen >= %s
               GROUP BY pattern_type, severity
               ORDER BY occurrences DESC, pattern_type
               LIMIT %s""",
            (since, int(limit)),
            operation="top failure patterns",
        )
        return [
            FailurePatternCount(pattern_type=r[0], severity=r[1] or "unknown", count=int(r[2]))
            for r in rows
        ]

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _connection(self) -> Any:
        if self._conn is None or self._conn.closed:
            try:
                self._conn = self._psycopg.connect(autocommit=True, **self._conninfo)
            except self._psycopg.OperationalError as e:
                raise TransientIOError(
                    "metrics connect",
                    f"{self._conninfo['host']}:{self._conninfo['port']}: {e}",
                ) from e
            logger.debug(
                "Connected to metrics database %s@%s",
                self._conninfo["dbname"], self._conninfo["host"],
            )
        return self._conn

    def _execute(self, sql: str, params: tuple, operation: str) -> None:
        conn = self._connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, params)
        except self._psycopg.OperationalError as e:
            raise TransientIOError(operation, e) from e

    def _query(self, sql: str, params: tuple, operation: str) -> list[tuple]:
        conn = self._connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                return cur.fetchall()
        except self._psycopg.OperationalError as e:
            raise TransientIOError(operation, e) from e


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _opt_float(value: Any) -> float | None:
    # NUMERIC columns arrive as Decimal.
    return None if value is None else float(value)


def _to_sample(row: tuple) -> BuildMetricSample:
    build_id, branch, duration, memory_mb, cpu, success, oom, ts = row
    if oom:
        result = "oom"
    elif success:
        result = "success"
    else:
        result = "failure"
    return BuildMetricSample(
        build_id=str(build_id),
        branch=branch,
        duration_seconds=float(duration or 0),
        peak_memory_mb=float(memory_mb or 0),
        cpu_cores_used=float(cpu or 0),
        result=result,
        timestamp=_aware(ts),
    )
