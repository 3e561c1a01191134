"""Data collection that feeds GitHub snapshots into the metric calculators.

This module owns every network-bound step of a run: listing the period's pull
requests, issues, deployments and workflow runs, resolving issue links and
per-PR review/commit details, then handing plain snapshots to the pure
calculators in :mod:`delivery_metrics.dora` and :mod:`delivery_metrics.extended`.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .config import Config
from .dora import calculate_metrics_for_repository
from .extended import (
    build_coding_time_entry,
    build_pr_cycle_time_entries,
    build_pr_size_entry,
    build_review_entry,
    build_rework_entry,
    calculate_coding_time,
    calculate_cycle_time,
    calculate_pr_cycle_time,
    calculate_pr_size,
    calculate_review_efficiency,
    calculate_rework_rate,
    collect_cycle_time_entries,
)
from .github_client import GitHubClient
from .health import DEFAULT_HEALTH_THRESHOLDS, evaluate_overall_health
from .models import Issue, PullRequest, RepositoryMetrics
from .timeutils import parse_timestamp

logger = logging.getLogger(__name__)


def measurement_window(days: int, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Return ``(since, until)`` covering the last ``days`` days in UTC."""
    until = now or datetime.now(timezone.utc)
    return until - timedelta(days=days), until


def format_period(since: datetime, until: datetime) -> str:
    """Format a measurement window as ``"YYYY-MM-DD to YYYY-MM-DD"``."""
    return f"{since:%Y-%m-%d} to {until:%Y-%m-%d}"


def _in_window(timestamp: Optional[str], since: datetime, until: datetime) -> bool:
    at = parse_timestamp(timestamp)
    return at is not None and since <= at <= until


def _resolve_linked_prs(
    client: GitHubClient,
    pr_numbers: Sequence[int],
    known_prs: Mapping[int, PullRequest],
) -> List[PullRequest]:
    """Return PR snapshots for ``pr_numbers``, fetching those not already listed."""
    resolved: List[PullRequest] = []
    for number in pr_numbers:
        pr = known_prs.get(number) or client.get_pull_request(number)
        if pr is not None:
            resolved.append(pr)
    return resolved


def _issues_by_pr(linked_prs: Mapping[int, Sequence[int]]) -> Dict[int, int]:
    """Map each PR number to the first issue that links it."""
    issues_by_pr: Dict[int, int] = {}
    for issue_number, pr_numbers in linked_prs.items():
        for pr_number in pr_numbers:
            issues_by_pr.setdefault(pr_number, issue_number)
    return issues_by_pr


def collect_repository_metrics(
    client: GitHubClient,
    config: Config,
    since: datetime,
    until: datetime,
    exclude_base_branches: Sequence[str] = (),
) -> RepositoryMetrics:
    """Fetch one repository's activity and compute all metrics for the window.

    Args:
        client: Authenticated GitHub client; also used as the PR chain fetcher.
        config: Validated runtime configuration.
        since: Window start (inclusive, UTC).
        until: Window end (inclusive, UTC).
        exclude_base_branches: Base branch substrings skipped by PR cycle time.

    Returns:
        A ``RepositoryMetrics`` record with DORA, extended metrics and health.

    Raises:
        ApiError: If any GitHub request fails.
        DataValidationError: If GitHub returns malformed records.
    """
    period = format_period(since, until)

    prs = client.list_pull_requests(since=since)
    deployments = [d for d in client.list_deployments() if _in_window(d.created_at, since, until)]
    runs = [r for r in client.list_workflow_runs(since=since) if _in_window(r.created_at, since, until)]
    issues: List[Issue] = client.list_issues(since=since)

    logger.info(
        "Fetched repository activity",
        extra={
            "repository": config.full_name,
            "prs_total": len(prs),
            "issues_total": len(issues),
            "deployments_total": len(deployments),
            "workflow_runs_total": len(runs),
        },
    )

    dora = calculate_metrics_for_repository(
        config.full_name,
        prs,
        deployments,
        runs,
        period_days=config.days,
        deploy_workflow_patterns=config.deploy_workflow_patterns,
        environment_pattern=config.environment_pattern,
        measured_on=until.date().isoformat(),
    )

    known_prs: Dict[int, PullRequest] = {pr.number: pr for pr in prs}
    linked_prs: Dict[int, List[int]] = {
        issue.number: client.list_linked_pull_requests(issue.number) for issue in issues
    }

    cycle_time = calculate_cycle_time(
        collect_cycle_time_entries(client, issues, linked_prs, config.production_pattern),
        period,
    )
    coding_time = calculate_coding_time(
        [
            build_coding_time_entry(issue, _resolve_linked_prs(client, linked_prs[issue.number], known_prs))
            for issue in issues
        ],
        period,
    )

    merged_prs = [pr for pr in prs if pr.merged_at]
    # The list endpoint omits additions/deletions/changed_files.
    detailed_prs = [client.get_pull_request(pr.number) or pr for pr in merged_prs]

    rework = calculate_rework_rate(
        [
            build_rework_entry(
                pr,
                client.list_pr_commit_timestamps(pr.number),
                client.count_force_pushes(pr.number),
            )
            for pr in merged_prs
        ],
        period,
    )
    review = calculate_review_efficiency(
        [
            build_review_entry(
                pr,
                client.get_ready_for_review_at(pr.number),
                client.list_reviews(pr.number),
            )
            for pr in merged_prs
        ],
        period,
    )
    size_entries = [build_pr_size_entry(pr) for pr in detailed_prs]
    pr_size = calculate_pr_size([entry for entry in size_entries if entry is not None], period)
    pr_cycle_time = calculate_pr_cycle_time(
        build_pr_cycle_time_entries(
            prs,
            exclude_base_branches=exclude_base_branches,
            linked_issues=_issues_by_pr(linked_prs),
        ),
        period,
    )

    health = evaluate_overall_health(
        {
            "lead_time": (dora.lead_time.hours, DEFAULT_HEALTH_THRESHOLDS["lead_time"]),
            "change_failure_rate": (
                dora.change_failure_rate.rate,
                DEFAULT_HEALTH_THRESHOLDS["change_failure_rate"],
            ),
            "cycle_time": (cycle_time.stats.avg, DEFAULT_HEALTH_THRESHOLDS["cycle_time"]),
            "time_to_first_review": (
                review.time_to_first_review.avg,
                DEFAULT_HEALTH_THRESHOLDS["time_to_first_review"],
            ),
        }
    )

    logger.info(
        "Collected repository metrics",
        extra={
            "repository": config.full_name,
            "period": period,
            "completed_issues": cycle_time.completed_task_count,
            "merged_prs": len(merged_prs),
            "health": health,
        },
    )

    return RepositoryMetrics(
        repository=config.full_name,
        period=period,
        dora=dora,
        cycle_time=cycle_time,
        coding_time=coding_time,
        rework=rework,
        review=review,
        pr_size=pr_size,
        pr_cycle_time=pr_cycle_time,
        health=health,
    )
