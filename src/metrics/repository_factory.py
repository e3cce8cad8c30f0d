# src/metrics/repository_factory.py — v1
"""Factory for metrics repository instantiation."""

from __future__ import annotations

from smartcache.config.settings import Settings
from smartcache.metrics.base_repository import BaseMetricsRepository


class UnsupportedMetricsBackendError(ValueError):
    """Raised when METRICS_BACKEND names an unknown backend."""


def create_metrics_repository(settings: Settings | None = None) -> BaseMetricsRepository:
    """Instantiate the configured metrics backend.

    Args:
        settings: Application settings. Defaults to the postgres backend
            with default connection parameters.

    Returns:
        Configured BaseMetricsRepository implementation. Both backends
        connect lazily, so construction never fails on an unreachable store.
    """
    settings = settings or Settings(_env_file=None)
    backend = settings.metrics_backend

    if backend == "sqlite":
        from smartcache.metrics.sqlite_repository import SqliteMetricsRepository
        return SqliteMetricsRepository(
            db_path=settings.metrics_sqlite_file,
            timeout_s=settings.db_connect_timeout_seconds,
        )

    if backend == "postgres":
        from smartcache.metrics.postgres_repository import PostgresMetricsRepository
        return PostgresMetricsRepository(
            host=settings.db_host,
            port=settings.db_port,
            dbname=settings.db_name,
            user=settings.db_user,
            password=settings.db_password,
            connect_timeout_s=max(1, int(settings.db_connect_timeout_seconds)),
            query_timeout_s=settings.db_query_timeout_seconds,
        )

    raise UnsupportedMetricsBackendError(f"Unsupported metrics backend: {backend!r}")
