"""Statistics and formatting helpers for delivery metric reporting.

This module provides utilities for:
- Rounding hour values to one decimal place (round half up).
- Computing the median of a numeric sample.
- Aggregating summary statistics (average, median, min, max).
- Formatting hour values for display.
- Building a human-readable report for DORA and extended metrics.
"""

from __future__ import annotations

import math
from typing import List, Optional, Sequence

from .models import (
    CodingTimeMetrics,
    CycleTimeMetrics,
    DevOpsMetrics,
    PRCycleTimeMetrics,
    PRSizeMetrics,
    ReviewEfficiencyMetrics,
    ReworkRateMetrics,
    Statistics,
)


def round_hours(value: float) -> float:
    """Round a value to one decimal place using round-half-up.

    ``round()`` uses banker's rounding, so ``0.25`` would become ``0.2``.
    Hour values are instead rounded towards positive infinity at the midpoint.
    """
    return math.floor(value * 10 + 0.5) / 10


def calculate_median(values: Sequence[float]) -> Optional[float]:
    """Return the median of ``values`` or ``None`` when empty.

    For an even number of samples the mean of the two middle values is used.
    """
    if not values:
        return None

    ordered = sorted(values)
    middle = len(ordered) // 2
    if len(ordered) % 2 == 1:
        return float(ordered[middle])
    return (ordered[middle - 1] + ordered[middle]) / 2


def calculate_stats(values: Sequence[float]) -> Statistics:
    """Compute average, median, min and max for a numeric sample.

    Average and median are rounded with :func:`round_hours`; min and max are
    returned as observed. ``None`` and NaN samples are ignored. Every field is
    ``None`` when no valid samples exist, so "no data" is never reported as zero.

    Args:
        values: Numeric samples, typically durations in hours.

    Returns:
        A ``Statistics`` instance.
    """
    clean: List[float] = [
        float(value) for value in values if value is not None and not math.isnan(value)
    ]

    if not clean:
        return Statistics(avg=None, median=None, min=None, max=None)

    median = calculate_median(clean)
    return Statistics(
        avg=round_hours(sum(clean) / len(clean)),
        median=round_hours(median) if median is not None else None,
        min=min(clean),
        max=max(clean),
    )


def format_hours(hours: Optional[float]) -> str:
    """Format an hour value as ``"12.5h"`` or ``"n/a"`` when missing."""
    if hours is None:
        return "n/a"
    return f"{hours:.1f}h"


def _format_number(value: Optional[float], suffix: str = "") -> str:
    if value is None:
        return "n/a"
    return f"{value:.1f}{suffix}"


def generate_report(
    repo_name: str,
    dora: DevOpsMetrics,
    cycle_time: Optional[CycleTimeMetrics] = None,
    coding_time: Optional[CodingTimeMetrics] = None,
    rework: Optional[ReworkRateMetrics] = None,
    review: Optional[ReviewEfficiencyMetrics] = None,
    pr_size: Optional[PRSizeMetrics] = None,
    pr_cycle_time: Optional[PRCycleTimeMetrics] = None,
    health: Optional[str] = None,
) -> str:
    """Generate a human-readable metrics report for a repository.

    The DORA section is always present. Extended metric sections are included
    only for the metrics that were calculated.

    Args:
        repo_name: Repository display name (``owner/repo``).
        dora: DORA metrics for the repository.
        cycle_time: Optional issue cycle time metrics.
        coding_time: Optional coding time metrics.
        rework: Optional rework rate metrics.
        review: Optional review efficiency metrics.
        pr_size: Optional PR size metrics.
        pr_cycle_time: Optional PR cycle time metrics.
        health: Optional overall health status (good, warning or critical).

    Returns:
        Formatted multi-line text report.
    """
    frequency = dora.deployment_frequency
    lines = [
        f"Repository: {repo_name}",
        "Delivery Metrics Report",
        "",
        "1) DORA",
        f"   Deployments: {frequency.count} ({frequency.source})",
        f"   Deployment frequency: {_format_number(frequency.frequency, '/day')}"
        f" [{frequency.tier or 'n/a'}]",
        f"   Lead time for changes: {format_hours(dora.lead_time.hours)}",
        f"   Change failure rate: {_format_number(dora.change_failure_rate.rate, '%')}"
        f" ({dora.change_failure_rate.failed}/{dora.change_failure_rate.total})",
        f"   Mean time to recovery: {format_hours(dora.mttr_hours)}",
    ]

    if cycle_time is not None:
        lines += [
            "",
            "2) Cycle Time (Issue to Production)",
            f"   Issues: {cycle_time.completed_task_count}",
            f"   Average: {format_hours(cycle_time.stats.avg)}",
            f"   Median: {format_hours(cycle_time.stats.median)}",
        ]

    if coding_time is not None:
        lines += [
            "",
            "3) Coding Time (Issue to First PR)",
            f"   Issues: {coding_time.issue_count}",
            f"   Average: {format_hours(coding_time.stats.avg)}",
            f"   Median: {format_hours(coding_time.stats.median)}",
        ]

    if rework is not None:
        lines += [
            "",
            "4) Rework Rate",
            f"   PRs: {rework.pr_count}",
            f"   Additional commits (avg): {_format_number(rework.additional_commits.avg)}",
            f"   Additional commits (median): {_format_number(rework.additional_commits.median)}",
            f"   Force push rate: {_format_number(rework.force_push_rate, '%')}",
        ]

    if review is not None:
        lines += [
            "",
            "5) Review Efficiency",
            f"   PRs: {review.pr_count}",
            f"   Time to first review (avg): {format_hours(review.time_to_first_review.avg)}",
            f"   Review duration (avg): {format_hours(review.review_duration.avg)}",
            f"   Time to merge (avg): {format_hours(review.time_to_merge.avg)}",
            f"   Total time (avg): {format_hours(review.total_time.avg)}",
        ]

    if pr_size is not None:
        lines += [
            "",
            "6) PR Size",
            f"   PRs: {pr_size.pr_count}",
            f"   Lines of code (avg): {_format_number(pr_size.lines_of_code.avg)}",
            f"   Files changed (avg): {_format_number(pr_size.files_changed.avg)}",
        ]

    if pr_cycle_time is not None:
        lines += [
            "",
            "7) PR Cycle Time (Creation to Merge)",
            f"   Merged PRs: {pr_cycle_time.merged_pr_count}",
            f"   Average: {format_hours(pr_cycle_time.stats.avg)}",
            f"   Median: {format_hours(pr_cycle_time.stats.median)}",
        ]

    if health is not None:
        lines += ["", f"Overall health: {health}"]

    return "\n".join(lines)
