# src/tracking/exporter.py — v2
"""Human-readable summaries of cache state and cache effectiveness."""

from __future__ import annotations

from smartcache.cache.models import CacheStatus, InvalidateResult, WarmResult
from smartcache.tracking.models import EffectivenessReport

LOW_HIT_RATE_ADVICE = (
    "Set up scheduled cache warming pipeline",
    "Warm caches before major builds",
    "Check if dependencies change too frequently",
    "Consider using fixed dependency versions",
)


def human_size(size_bytes: int) -> str:
    """Format a byte count the way `du -h` does (1.5G, 320M, 12K)."""
    if size_bytes < 1024:
        return f"{size_bytes}B"
    value = size_bytes / 1024
    for unit in ("K", "M"):
        if value < 1024:
            return f"{value:.1f}{unit}"
        value /= 1024
    return f"{value:.1f}G"


def export_status_summary(status: CacheStatus) -> str:
    """Generate the status report.

    Args:
        status: Result of CacheManager.status().

    Returns:
        Formatted summary string.
    """
    fp = status.current_fingerprint
    lines: list[str] = [
        "=== Cache Status ===",
        f"Cache directory : {status.cache_dir}",
        f"State           : {status.state.value}",
        f"Current hash    : {fp.value}",
        f"Stored hash     : {status.stored_fingerprint or 'none'}",
        f"Tracked files   : {len(fp.files)} (schema {fp.schema_version})",
    ]

    entry = status.entry
    if entry is not None:
        lines += [
            "",
            "--- Cache Metadata ---",
            f"  Populated   : {entry.populated_at.isoformat()}",
            f"  Size        : {human_size(entry.size_bytes)}",
            f"  Files       : {entry.file_count}",
            f"  Dependencies: {entry.dependency_count}",
            f"  Commit      : {entry.commit_sha}",
            f"  Build ID    : {entry.build_id}",
            f"  Version     : {entry.cache_version}",
        ]
    elif status.state.value == "ABSENT":
        lines.append("\nNo cache entry; run 'smartcache warm' to create it.")
    else:
        lines.append("\nNo readable metadata; the entry will be repopulated.")

    return "\n".join(lines)


def export_warm_summary(result: WarmResult) -> str:
    if result.action == "skipped":
        return f"Cache already warm (hash {result.fingerprint[:12]})"
    lines = [f"Cache warmed successfully (was {result.previous_state.value})",
             f"Dependency hash: {result.fingerprint}"]
    if result.entry is not None:
        lines.append(
            f"Cache size: {human_size(result.entry.size_bytes)}, "
            f"{result.entry.file_count} files, {result.entry.dependency_count} dependencies"
        )
    return "\n".join(lines)


def export_invalidate_summary(result: InvalidateResult) -> str:
    if result.action == "noop":
        return "No cache entry to invalidate"
    if result.action == "refused":
        return "Cache is valid - dependencies unchanged (use --force to evict)"
    reason = "forced" if result.forced and result.previous_state.value == "PRESENT" else "dependencies changed"
    return (
        f"Cache invalidated ({reason})\n"
        "Next build will rebuild the cache automatically."
    )


def export_effectiveness_summary(report: EffectivenessReport) -> str:
    """Generate the effectiveness report, including advice for low hit rates.

    Args:
        report: Result of EffectivenessTracker.analyze().

    Returns:
        Formatted summary string.
    """
    lines: list[str] = [
        f"=== Cache Effectiveness (last {report.window_days} days) ===",
        f"Total events : {report.sample_count}",
        f"Hits         : {report.hits}",
        f"Misses       : {report.misses}",
    ]
    if report.hit_rate is not None:
        lines.append(f"Hit rate     : {report.hit_rate * 100:.1f}%")

    lines.append(f"Joined builds: {report.joined_builds}")
    if report.avg_duration_with_hit is not None:
        lines.append(f"Avg duration (hit) : {report.avg_duration_with_hit:.1f}s")
    if report.avg_duration_with_miss is not None:
        lines.append(f"Avg duration (miss): {report.avg_duration_with_miss:.1f}s")
    if report.estimated_time_saved_seconds is not None:
        lines.append(f"Estimated time saved: {report.estimated_time_saved_seconds:.0f}s")

    if report.rating == "excellent":
        lines.append("\nExcellent hit rate!")
    elif report.rating == "good":
        lines.append("\nGood hit rate, room for improvement")
    elif report.rating == "low":
        lines.append("\nLow hit rate - consider cache warming strategy")
        lines.append("\n--- Recommendations ---")
        lines += [f"  {i}. {advice}" for i, advice in enumerate(LOW_HIT_RATE_ADVICE, 1)]

    if report.recent_events:
        lines.append("\n--- Recent Cache Events ---")
        for e in report.recent_events:
            lines.append(
                f"  {e.timestamp.isoformat(timespec='seconds')} | {e.outcome:4s} | "
                f"{e.build_id} | {e.commit_sha[:12]} | {e.fingerprint[:12]}"
            )

    return "\n".join(lines)
