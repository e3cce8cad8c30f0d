# src/resources/exporter.py — v2
"""Render resource recommendations as pipeline YAML and summary text."""

from __future__ import annotations

import logging
from datetime import timezone
from pathlib import Path
from typing import Any

import yaml

from smartcache.resources.models import ResourceInsights, ResourceRecommendation

logger = logging.getLogger(__name__)

BUILD_IMAGE = "android-ci:latest"
_STEP_COMMANDS = {
    "build": "./gradlew assembleDebug --no-daemon",
    "test": "./gradlew test --no-daemon",
}


def format_memory(memory_mb: int) -> str:
    """6144 -> '6GB', 6400 -> '6400MB'."""
    if memory_mb % 1024 == 0:
        return f"{memory_mb // 1024}GB"
    return f"{memory_mb}MB"


def pipeline_config(rec: ResourceRecommendation, image: str = BUILD_IMAGE) -> dict[str, Any]:
    """Build the pipeline resource configuration as plain data."""
    resources = {"memory": format_memory(rec.memory_mb), "cpu": rec.cpu_cores}
    steps = {
        name: {
            "image": image,
            "commands": [f'export GRADLE_OPTS="{rec.gradle_opts}"', command],
            "resources": dict(resources),
        }
        for name, command in _STEP_COMMANDS.items()
    }
    return {"pipeline": {"resources": dict(resources)}, "steps": steps}


def export_pipeline_yaml(
    rec: ResourceRecommendation, insights: ResourceInsights | None = None,
) -> str:
    """Render the pipeline config with a provenance header.

    With ``insights``, a commented "Performance Notes" trailer follows the
    YAML body; it does not change the parsed document.
    """
    generated = rec.generated_at.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
    header = [
        "# CI Resource Configuration",
        f"# Generated by smartcache on {generated}",
        f"# Based on {rec.basis_sample_count} builds ({rec.basis}, {rec.confidence} confidence)",
        "",
    ]
    body = yaml.safe_dump(pipeline_config(rec), default_flow_style=False, sort_keys=False)
    notes = _performance_notes(insights) if insights is not None else []
    trailer = "\n" + "\n".join(notes) + "\n" if notes else ""
    return "\n".join(header) + body + trailer


def write_pipeline_yaml(
    rec: ResourceRecommendation, path: Path, insights: ResourceInsights | None = None,
) -> None:
    """Write the pipeline config to ``path``, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(export_pipeline_yaml(rec, insights), encoding="utf-8")
    logger.info("Configuration written to %s", path)


def export_recommendation_summary(
    rec: ResourceRecommendation, insights: ResourceInsights | None = None,
) -> str:
    """Generate a human-readable summary of a recommendation.

    Args:
        rec: Recommendation to describe.
        insights: Optional build performance, efficiency and failure context.

    Returns:
        Formatted summary string.
    """
    lines: list[str] = [
        f"=== Resource Recommendations: {rec.branch} ===",
        f"Samples     : {rec.basis_sample_count} ({rec.basis})",
        f"Confidence  : {rec.confidence}",
    ]
    if rec.memory_percentile_mb is not None:
        lines.append(
            f"Peak memory : {_fmt(rec.memory_percentile_mb)} MB (percentile), "
            f"{_fmt(rec.mean_memory_mb)} MB (mean)"
        )
    if rec.cpu_percentile is not None:
        lines.append(f"CPU usage   : {rec.cpu_percentile:.2f} cores (percentile)")
    if rec.oom_count:
        lines.append(
            f"OutOfMemory : {rec.oom_count} build(s), largest at {_fmt(rec.max_oom_memory_mb)} MB"
        )
    if insights is not None:
        lines += _insight_lines(insights)
    lines += [
        "",
        "--- Recommended Configuration ---",
        f"  Memory     : {format_memory(rec.memory_mb)} ({rec.memory_mb} MB)",
        f"  CPU        : {rec.cpu_cores} cores",
        f"  GRADLE_OPTS: {rec.gradle_opts}",
    ]
    if rec.confidence == "low":
        lines.append("\nFew samples available; re-run after more builds are recorded.")
    return "\n".join(lines)


def _insight_lines(insights: ResourceInsights) -> list[str]:
    lines: list[str] = []
    perf = insights.performance
    if perf is not None:
        lines += ["", "--- Build Performance ---", f"  Builds     : {perf.build_count} successful"]
        if perf.avg_duration_seconds is not None:
            lines.append(f"  Duration   : {_fmt(perf.avg_duration_seconds)}s average")
        if perf.avg_code_coverage is not None:
            lines.append(f"  Coverage   : {perf.avg_code_coverage:.1f}% average")
        if perf.total_test_count is not None:
            lines.append(f"  Tests      : {perf.total_test_count}")

    eff = insights.efficiency
    if eff is not None:
        lines += ["", "--- Resource Efficiency ---"]
        lines.append(f"  Memory     : {_pct(eff.memory_efficiency)} of allocation used")
        lines.append(f"  CPU        : {_pct(eff.cpu_efficiency)} of allocation used")
        if eff.avg_peak_memory_gb is not None and eff.avg_allocated_memory_gb is not None:
            lines.append(
                f"  Peak/alloc : {eff.avg_peak_memory_gb:.1f} GB of "
                f"{eff.avg_allocated_memory_gb:.1f} GB"
            )
        if eff.low_memory_efficiency:
            lines.append("  Low memory efficiency; consider reducing the memory allocation.")

    if insights.failure_patterns:
        lines += ["", "--- Top Failure Patterns ---"]
        lines += [
            f"  {p.pattern_type} ({p.severity}): {p.count}"
            for p in insights.failure_patterns
        ]
    return lines


def _performance_notes(insights: ResourceInsights) -> list[str]:
    notes: list[str] = []
    perf = insights.performance
    if perf is not None and perf.avg_duration_seconds is not None:
        notes.append(f"# - Average build duration: {_fmt(perf.avg_duration_seconds)}s")
    if perf is not None and perf.avg_code_coverage is not None:
        notes.append(f"# - Average coverage: {perf.avg_code_coverage:.1f}%")
    eff = insights.efficiency
    if eff is not None and eff.memory_efficiency is not None:
        notes.append(f"# - Memory efficiency: {_pct(eff.memory_efficiency)}")
    if perf is not None and perf.total_test_count is not None:
        notes.append(f"# - Test count: {perf.total_test_count}")
    return ["# Performance Notes:", *notes] if notes else []


def _fmt(value: float | None) -> str:
    return "n/a" if value is None else f"{value:.0f}"


def _pct(ratio: float | None) -> str:
    return "n/a" if ratio is None else f"{ratio * 100:.0f}%"
