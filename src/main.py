# src/main.py — v3
"""CLI entry point: cache decisions, hit/miss tracking and resource advice.

Usage:
    smartcache warm
    smartcache status
    smartcache invalidate [--force]
    smartcache check
    smartcache track hit|miss
    smartcache analyze [--days N]
    smartcache resources [--branch NAME] [--output FILE]
    adapt-resources [--branch NAME] [--output FILE]

Exit codes: 0 success, 1 failure (including stale cache for ``check`` and
no data for ``analyze``/``resources``), 130 interrupted.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from smartcache.config.settings import Settings, load_settings
from smartcache.core.errors import (
    ConfigurationError,
    InputError,
    NoDataError,
    SmartCacheError,
)
from smartcache.logging.context import clear_context, set_build_context, set_command_context
from smartcache.logging.logger import setup_logging
from smartcache.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return 1
    return _run(args)


def adapt_resources_main(argv: list[str] | None = None) -> int:
    """Entry point of the standalone resource analyzer."""
    parser = argparse.ArgumentParser(
        prog="adapt-resources",
        description="Analyze build metrics and recommend memory/CPU allocation",
    )
    _add_global_flags(parser)
    _add_resource_flags(parser)
    parser.set_defaults(func=_cmd_resources, command="resources")
    return _run(parser.parse_args(argv))


def _run(args: argparse.Namespace) -> int:
    try:
        settings = _load_settings(args)
    except (ConfigurationError, ValidationError) as exc:
        setup_logging("DEBUG" if args.verbose else "INFO")
        logger.error("Invalid configuration: %s", exc)
        return 1

    setup_logging(
        level="DEBUG" if args.verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )
    set_build_context(settings.ci_build_id, settings.ci_commit_sha)
    set_command_context(args.command)

    try:
        return asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except NoDataError as exc:
        logger.warning("%s", exc)
        return 1
    except SmartCacheError as exc:
        logger.error("%s", exc)
        return 1
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1
    finally:
        clear_context()


def _load_settings(args: argparse.Namespace) -> Settings:
    overrides: dict[str, object] = {}
    if getattr(args, "project_dir", None) is not None:
        overrides["project_dir"] = args.project_dir
    if getattr(args, "cache_dir", None) is not None:
        overrides["cache_dir"] = args.cache_dir
    return load_settings(**overrides)


def _add_global_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )


def _add_resource_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--branch", default=None,
        help="Branch to analyze (default: RESOURCE_BRANCH, main)",
    )
    parser.add_argument(
        "--output", type=Path, default=None,
        help="Write the pipeline YAML configuration to this file",
    )
    parser.add_argument(
        "--lookback-days", type=int, default=None,
        help="Time window in days (default: RESOURCE_LOOKBACK_DAYS)",
    )
    parser.add_argument(
        "--lookback-builds", type=int, default=None,
        help="Build-count window (default: RESOURCE_LOOKBACK_BUILDS)",
    )


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="smartcache",
        description=f"smartcache v{__version__}: smart build cache and adaptive CI resources",
    )
    _add_global_flags(parser)
    parser.add_argument(
        "--project-dir", type=Path, default=None,
        help="Project directory holding the Gradle build (default: PROJECT_DIR)",
    )
    parser.add_argument(
        "--cache-dir", type=Path, default=None,
        help="Shared dependency cache directory (default: CACHE_DIR)",
    )

    subparsers = parser.add_subparsers(dest="command")

    p_warm = subparsers.add_parser("warm", help="Populate the cache for the current dependencies")
    p_warm.set_defaults(func=_cmd_warm)

    p_status = subparsers.add_parser("status", help="Show cache state and metadata")
    p_status.set_defaults(func=_cmd_status)

    p_invalidate = subparsers.add_parser(
        "invalidate", help="Evict the cache if dependencies changed",
    )
    p_invalidate.add_argument(
        "--force", action="store_true",
        help="Evict even if the cache matches the current dependencies",
    )
    p_invalidate.set_defaults(func=_cmd_invalidate)

    p_check = subparsers.add_parser("check", help="Exit 0 if the cache is fresh, 1 otherwise")
    p_check.set_defaults(func=_cmd_check)

    p_track = subparsers.add_parser("track", help="Record a cache hit or miss")
    p_track.add_argument("outcome", help="hit or miss")
    p_track.set_defaults(func=_cmd_track)

    p_analyze = subparsers.add_parser("analyze", help="Report cache effectiveness")
    p_analyze.add_argument(
        "--days", type=int, default=None,
        help="Window in days (default: ANALYZE_WINDOW_DAYS, 30)",
    )
    p_analyze.set_defaults(func=_cmd_analyze)

    p_resources = subparsers.add_parser(
        "resources", help="Recommend memory/CPU from build history",
    )
    _add_resource_flags(p_resources)
    p_resources.set_defaults(func=_cmd_resources)

    return parser


async def _cmd_warm(args: argparse.Namespace, settings: Settings) -> int:
    from smartcache.cache.manager import CacheManager
    from smartcache.tracking.exporter import export_warm_summary

    result = await CacheManager.from_settings(settings).warm()
    print(export_warm_summary(result))
    return 0


async def _cmd_status(args: argparse.Namespace, settings: Settings) -> int:
    from smartcache.cache.manager import CacheManager
    from smartcache.tracking.exporter import export_status_summary

    status = await CacheManager.from_settings(settings).status()
    print(export_status_summary(status))
    return 0


async def _cmd_invalidate(args: argparse.Namespace, settings: Settings) -> int:
    from smartcache.cache.manager import CacheManager
    from smartcache.tracking.exporter import export_invalidate_summary

    result = await CacheManager.from_settings(settings).invalidate(force=args.force)
    print(export_invalidate_summary(result))
    return 0


async def _cmd_check(args: argparse.Namespace, settings: Settings) -> int:
    from smartcache.cache.manager import CacheManager

    status = await CacheManager.from_settings(settings).status()
    if status.is_fresh:
        print(f"Cache is fresh ({status.current_fingerprint.short()})")
        return 0
    print(f"Cache is {status.state.value.lower()}; warm it before building")
    return 1


async def _cmd_track(args: argparse.Namespace, settings: Settings) -> int:
    from smartcache.tracking.effectiveness import VALID_OUTCOMES

    if args.outcome not in VALID_OUTCOMES:
        raise InputError(f"Invalid event type {args.outcome!r}: must be 'hit' or 'miss'")
    tracker, repository = _tracker(settings)
    try:
        result = await tracker.track(args.outcome)
    finally:
        repository.close()
    suffix = "" if result.delivered else " (spooled locally)"
    print(f"Cache {result.event.outcome} tracked for build {result.event.build_id}{suffix}")
    return 0


async def _cmd_analyze(args: argparse.Namespace, settings: Settings) -> int:
    from smartcache.tracking.exporter import export_effectiveness_summary

    days = args.days if args.days is not None else settings.analyze_window_days
    tracker, repository = _tracker(settings)
    try:
        report = await tracker.analyze(days)
    finally:
        repository.close()
    print(export_effectiveness_summary(report))
    return 0


async def _cmd_resources(args: argparse.Namespace, settings: Settings) -> int:
    from smartcache.metrics.repository_factory import create_metrics_repository
    from smartcache.resources.exporter import (
        export_pipeline_yaml,
        export_recommendation_summary,
        write_pipeline_yaml,
    )
    from smartcache.resources.recommender import ResourceRecommender

    branch = args.branch or settings.resource_branch
    repository = create_metrics_repository(settings)
    try:
        recommender = ResourceRecommender.from_settings(settings, repository)
        rec = await recommender.recommend(
            branch,
            lookback_builds=args.lookback_builds,
            lookback_days=args.lookback_days,
        )
        insights = await recommender.insights(branch, lookback_days=args.lookback_days)
        print(export_recommendation_summary(rec, insights))
        print()
        print(export_pipeline_yaml(rec, insights))
        if args.output is not None:
            write_pipeline_yaml(rec, args.output, insights)
            print(f"Configuration written to: {args.output}")
        await recommender.record(rec)
    finally:
        repository.close()
    return 0


def _tracker(settings: Settings):
    """Wire an EffectivenessTracker to the configured repository and spool."""
    from smartcache.cache.manager import CacheManager
    from smartcache.metrics.repository_factory import create_metrics_repository
    from smartcache.tracking.effectiveness import EffectivenessTracker
    from smartcache.tracking.event_spool import EventSpool

    repository = create_metrics_repository(settings)
    manager = CacheManager.from_settings(settings)
    tracker = EffectivenessTracker(
        repository=repository,
        spool=EventSpool.for_cache_dir(
            settings.cache_dir.expanduser(), max_events=settings.spool_max_events,
        ),
        fingerprint=manager.fingerprint,
        build_id=settings.ci_build_id,
        commit_sha=settings.ci_commit_sha,
    )
    return tracker, repository


if __name__ == "__main__":
    sys.exit(main())
