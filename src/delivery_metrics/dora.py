"""DORA (DevOps Research and Assessment) metric calculators.

This module computes the four key DORA metrics from deployment and workflow
run snapshots:
1. Deployment Frequency - successful production deployments per day
2. Lead Time for Changes - merge to deployment, or PR creation to merge
3. Change Failure Rate - percentage of production deployments that failed
4. Mean Time to Recovery - failure to next success, in hours

Each metric has a primary data source (deployments) and a fallback data
source (workflow runs whose name matches a configured deploy pattern). No
incident system is consulted; failure rate and recovery are approximated from
deployment outcomes.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from .config import DEFAULT_DEPLOY_WORKFLOW_PATTERNS, DEFAULT_ENVIRONMENT_PATTERN
from .models import (
    ChangeFailureRateResult,
    Deployment,
    DeploymentFrequencyResult,
    DevOpsMetrics,
    LeadTimeResult,
    PullRequest,
    WorkflowRun,
)
from .stats import round_hours
from .timeutils import hours_between, parse_timestamp

logger = logging.getLogger(__name__)

LEAD_TIME_DEPLOYMENT_WINDOW_HOURS = 24

SOURCE_DEPLOYMENTS = "deployments"
SOURCE_WORKFLOW_RUNS = "workflow_runs"

_FAILED_DEPLOYMENT_STATUSES = frozenset({"failure", "error"})


def _contains(value: Optional[str], pattern: str) -> bool:
    if not value or not pattern:
        return False
    return pattern.lower() in value.lower()


def is_deploy_workflow(run: WorkflowRun, patterns: Sequence[str]) -> bool:
    """Return whether the run's name contains any deploy pattern (case-insensitive)."""
    return any(_contains(run.name, pattern) for pattern in patterns)


def classify_deployment_frequency(frequency: Optional[float]) -> Optional[str]:
    """Classify deployments per day as daily, weekly, monthly or yearly.

    Thresholds are ``>= 1`` (daily), ``>= 1/7`` (weekly) and ``>= 1/30``
    (monthly); anything lower is yearly. ``None`` stays ``None``.
    """
    if frequency is None:
        return None
    if frequency >= 1:
        return "daily"
    if frequency >= 1 / 7:
        return "weekly"
    if frequency >= 1 / 30:
        return "monthly"
    return "yearly"


def _require_positive_period(period_days: float) -> None:
    if period_days <= 0:
        raise ValueError("'period_days' must be greater than 0.")


def calculate_deployment_frequency(
    deployments: Sequence[Deployment],
    runs: Sequence[WorkflowRun],
    period_days: float,
    deploy_workflow_patterns: Sequence[str] = DEFAULT_DEPLOY_WORKFLOW_PATTERNS,
) -> DeploymentFrequencyResult:
    """Calculate deployment frequency (deployments per day).

    Business logic:
    - Primary: count deployments with ``status == "success"``.
    - Fallback, only when the primary count is zero: count successful workflow
      runs whose name matches any deploy pattern.
    - ``frequency = count / period_days``, unrounded.

    Raises:
        ValueError: If ``period_days`` is not positive.
    """
    _require_positive_period(period_days)

    count = sum(1 for deployment in deployments if deployment.status == "success")
    source = SOURCE_DEPLOYMENTS

    if count == 0:
        count = sum(
            1
            for run in runs
            if run.conclusion == "success" and is_deploy_workflow(run, deploy_workflow_patterns)
        )
        source = SOURCE_WORKFLOW_RUNS

    if count == 0:
        return DeploymentFrequencyResult(count=0, frequency=None, tier=None, source=source)

    frequency = count / period_days
    return DeploymentFrequencyResult(
        count=count,
        frequency=frequency,
        tier=classify_deployment_frequency(frequency),
        source=source,
    )


def _successful_deployment_times(deployments: Sequence[Deployment]) -> List[datetime]:
    times: List[datetime] = []
    for deployment in deployments:
        if deployment.status != "success":
            continue
        at = parse_timestamp(deployment.created_at)
        if at is not None:
            times.append(at)
    return sorted(times)


def calculate_lead_time(
    prs: Sequence[PullRequest],
    deployments: Sequence[Deployment],
) -> LeadTimeResult:
    """Calculate average lead time for changes over merged pull requests.

    Business logic:
    - For each merged PR, find the earliest successful deployment at or after
      its merge time.
    - When that deployment happened within 24 hours of the merge, lead time is
      ``deployed_at - merged_at``.
    - Otherwise (no deployment, or later than 24 hours) lead time falls back to
      ``merged_at - created_at`` for that PR.
    - The average over all merged PRs is rounded to one decimal hour.
    """
    deployment_times = _successful_deployment_times(deployments)
    lead_times: List[float] = []
    deployment_based = 0
    fallback = 0

    for pr in prs:
        merged_at = parse_timestamp(pr.merged_at)
        if merged_at is None:
            continue

        deployed_at = next((at for at in deployment_times if at >= merged_at), None)
        if deployed_at is not None:
            gap_hours = (deployed_at - merged_at).total_seconds() / 3600
            if gap_hours <= LEAD_TIME_DEPLOYMENT_WINDOW_HOURS:
                lead_times.append(gap_hours)
                deployment_based += 1
                continue

        pr_hours = hours_between(pr.created_at, pr.merged_at)
        if pr_hours is None:
            continue
        lead_times.append(pr_hours)
        fallback += 1

    if not lead_times:
        return LeadTimeResult(hours=None, merged_pr_count=0, deployment_based_count=0, fallback_count=0)

    return LeadTimeResult(
        hours=round_hours(sum(lead_times) / len(lead_times)),
        merged_pr_count=len(lead_times),
        deployment_based_count=deployment_based,
        fallback_count=fallback,
    )


def calculate_change_failure_rate(
    deployments: Sequence[Deployment],
    runs: Sequence[WorkflowRun],
    deploy_workflow_patterns: Sequence[str] = DEFAULT_DEPLOY_WORKFLOW_PATTERNS,
    environment_pattern: str = DEFAULT_ENVIRONMENT_PATTERN,
) -> ChangeFailureRateResult:
    """Calculate change failure rate as a percentage rounded to one decimal.

    Business logic:
    - Primary: failed (``failure`` or ``error``) over all deployments whose
      environment matches ``environment_pattern``.
    - Fallback, when no production deployments exist: failed over all
      name-matched deploy workflow runs.
    - ``rate`` is ``None`` when neither source has any record.
    """
    production = [d for d in deployments if _contains(d.environment, environment_pattern)]

    if production:
        total = len(production)
        failed = sum(1 for d in production if d.status in _FAILED_DEPLOYMENT_STATUSES)
        source = SOURCE_DEPLOYMENTS
    else:
        deploy_runs = [run for run in runs if is_deploy_workflow(run, deploy_workflow_patterns)]
        total = len(deploy_runs)
        failed = sum(1 for run in deploy_runs if run.conclusion == "failure")
        source = SOURCE_WORKFLOW_RUNS

    if total == 0:
        return ChangeFailureRateResult(total=0, failed=0, rate=None, source=source)

    return ChangeFailureRateResult(
        total=total,
        failed=failed,
        rate=round_hours(failed / total * 100),
        source=source,
    )


def _outcome_events(
    deployments: Sequence[Deployment],
    runs: Sequence[WorkflowRun],
    deploy_workflow_patterns: Sequence[str],
) -> List[Tuple[datetime, bool]]:
    """Return chronologically ordered ``(time, succeeded)`` events.

    Deployments are used when any has a success or failure outcome; otherwise
    name-matched workflow runs are used.
    """
    events: List[Tuple[datetime, bool]] = []
    for deployment in deployments:
        if deployment.status == "success" or deployment.status in _FAILED_DEPLOYMENT_STATUSES:
            at = parse_timestamp(deployment.created_at)
            if at is not None:
                events.append((at, deployment.status == "success"))

    if not events:
        for run in runs:
            if run.conclusion not in ("success", "failure"):
                continue
            if not is_deploy_workflow(run, deploy_workflow_patterns):
                continue
            at = parse_timestamp(run.created_at)
            if at is not None:
                events.append((at, run.conclusion == "success"))

    return sorted(events, key=lambda event: event[0])


def calculate_mttr(
    deployments: Sequence[Deployment],
    runs: Sequence[WorkflowRun],
    deploy_workflow_patterns: Sequence[str] = DEFAULT_DEPLOY_WORKFLOW_PATTERNS,
) -> Optional[float]:
    """Calculate mean time to recovery in hours, rounded to one decimal.

    Events are walked in chronological order. A failure opens a recovery
    window (a later failure before any success moves its start); the next
    success closes it. Returns ``None`` when no window was closed.
    """
    recovery_hours: List[float] = []
    failure_at: Optional[datetime] = None

    for at, succeeded in _outcome_events(deployments, runs, deploy_workflow_patterns):
        if not succeeded:
            failure_at = at
        elif failure_at is not None:
            recovery_hours.append((at - failure_at).total_seconds() / 3600)
            failure_at = None

    if not recovery_hours:
        return None

    return round_hours(sum(recovery_hours) / len(recovery_hours))


def calculate_metrics_for_repository(
    repository: str,
    prs: Sequence[PullRequest],
    deployments: Sequence[Deployment],
    runs: Sequence[WorkflowRun],
    period_days: float = 30,
    deploy_workflow_patterns: Sequence[str] = DEFAULT_DEPLOY_WORKFLOW_PATTERNS,
    environment_pattern: str = DEFAULT_ENVIRONMENT_PATTERN,
    measured_on: Optional[str] = None,
) -> DevOpsMetrics:
    """Calculate all four DORA metrics for one repository.

    Deployments outside ``environment_pattern`` are ignored for frequency,
    lead time and recovery.

    Args:
        repository: Repository name (``owner/repo``).
        prs: Pull request snapshots for the period.
        deployments: Deployment snapshots for the period.
        runs: Workflow run snapshots for the period.
        period_days: Length of the measurement period in days.
        deploy_workflow_patterns: Workflow name substrings counted as deployments.
        environment_pattern: Substring identifying production environments.
        measured_on: Measurement date (``YYYY-MM-DD``); defaults to today (UTC).

    Returns:
        A ``DevOpsMetrics`` record.
    """
    production = [d for d in deployments if _contains(d.environment, environment_pattern)]

    metrics = DevOpsMetrics(
        date=measured_on or datetime.now(timezone.utc).date().isoformat(),
        repository=repository,
        deployment_frequency=calculate_deployment_frequency(
            production, runs, period_days, deploy_workflow_patterns
        ),
        lead_time=calculate_lead_time(prs, production),
        change_failure_rate=calculate_change_failure_rate(
            deployments, runs, deploy_workflow_patterns, environment_pattern
        ),
        mttr_hours=calculate_mttr(production, runs, deploy_workflow_patterns),
    )

    logger.info(
        "Calculated DORA metrics",
        extra={
            "repository": repository,
            "deployment_count": metrics.deployment_frequency.count,
            "deployment_source": metrics.deployment_frequency.source,
            "lead_time_hours": metrics.lead_time.hours,
            "change_failure_rate": metrics.change_failure_rate.rate,
            "mttr_hours": metrics.mttr_hours,
        },
    )

    return metrics

