"""Domain models for delivery metric computation.

Snapshot records (issues, pull requests, deployments, workflow runs) are built
once per invocation from fetch results and never mutated. Timestamps are kept
as ISO-8601 strings; see :mod:`delivery_metrics.timeutils` for parsing.

Metric results hold ``None`` for every statistic when no entity contributed,
so "no data" is distinguishable from a measured zero.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


# ---------------------------------------------------------------------------
# Snapshot records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PullRequestRef:
    """Minimal pull request data needed to follow a merge chain."""

    number: int
    base_branch: Optional[str]
    head_branch: Optional[str]
    merged_at: Optional[str]
    merge_commit_sha: Optional[str]


@dataclass(frozen=True, slots=True)
class PullRequest:
    """Pull request snapshot used by the metric calculators."""

    number: int
    title: str
    repository: str
    author: str
    state: str
    created_at: str
    merged_at: Optional[str] = None
    closed_at: Optional[str] = None
    base_branch: Optional[str] = None
    head_branch: Optional[str] = None
    merge_commit_sha: Optional[str] = None
    additions: int = 0
    deletions: int = 0
    changed_files: int = 0


@dataclass(frozen=True, slots=True)
class Issue:
    """Issue snapshot; the start of cycle and coding time measurements."""

    number: int
    title: str
    repository: str
    created_at: str


@dataclass(frozen=True, slots=True)
class Deployment:
    """Deployment snapshot. ``status`` is success, failure, error, other or None."""

    environment: str
    created_at: str
    status: Optional[str]


@dataclass(frozen=True, slots=True)
class WorkflowRun:
    """Workflow run snapshot. ``conclusion`` is success, failure, other or None."""

    name: str
    created_at: str
    conclusion: Optional[str]


@dataclass(frozen=True, slots=True)
class Review:
    """A submitted pull request review."""

    submitted_at: str
    state: str


# ---------------------------------------------------------------------------
# PR chain tracking
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PRChainItem:
    """One merge step recorded while tracking a chain."""

    pr_number: int
    base_branch: str
    head_branch: str
    merged_at: Optional[str]


@dataclass(slots=True)
class TrackResult:
    """Outcome of following a PR chain towards the production branch."""

    production_merged_at: Optional[str]
    pr_chain: List[PRChainItem] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Statistics:
    """Average, median, min and max over a sample; all ``None`` when empty."""

    avg: Optional[float]
    median: Optional[float]
    min: Optional[float]
    max: Optional[float]


# DORA


@dataclass(slots=True)
class DeploymentFrequencyResult:
    """Deployment count for a period and its per-day frequency."""

    count: int
    frequency: Optional[float]
    tier: Optional[str]
    source: str


@dataclass(slots=True)
class LeadTimeResult:
    """Average lead time for changes over merged pull requests."""

    hours: Optional[float]
    merged_pr_count: int
    deployment_based_count: int
    fallback_count: int


@dataclass(slots=True)
class ChangeFailureRateResult:
    """Failed share of production deployments, as a percentage."""

    total: int
    failed: int
    rate: Optional[float]
    source: str


@dataclass(slots=True)
class DevOpsMetrics:
    """The four DORA metrics for one repository and measurement date."""

    date: str
    repository: str
    deployment_frequency: DeploymentFrequencyResult
    lead_time: LeadTimeResult
    change_failure_rate: ChangeFailureRateResult
    mttr_hours: Optional[float]


# Cycle time


@dataclass(slots=True)
class IssueCycleTime:
    """Issue creation to production merge for a single issue."""

    issue_number: int
    issue_title: str
    repository: str
    issue_created_at: str
    production_merged_at: Optional[str]
    cycle_time_hours: Optional[float]
    pr_chain: List[PRChainItem] = field(default_factory=list)
    pr_chain_summary: str = ""


@dataclass(slots=True)
class CycleTimeMetrics:
    period: str
    completed_task_count: int
    stats: Statistics
    issue_details: List[IssueCycleTime] = field(default_factory=list)


# Coding time


@dataclass(slots=True)
class IssueCodingTime:
    """Issue creation to first linked pull request creation."""

    issue_number: int
    issue_title: str
    repository: str
    issue_created_at: str
    pr_created_at: Optional[str]
    pr_number: Optional[int]
    coding_time_hours: Optional[float]


@dataclass(slots=True)
class CodingTimeMetrics:
    period: str
    issue_count: int
    stats: Statistics
    issue_details: List[IssueCodingTime] = field(default_factory=list)


# Rework rate


@dataclass(slots=True)
class PRReworkData:
    """Commits pushed after PR creation and force pushes for one PR."""

    pr_number: int
    title: str
    repository: str
    created_at: str
    merged_at: Optional[str]
    total_commits: int
    additional_commits: int
    force_push_count: int


@dataclass(slots=True)
class ReworkRateMetrics:
    period: str
    pr_count: int
    additional_commits: Statistics
    force_push_avg: Optional[float]
    force_push_rate: Optional[float]
    pr_details: List[PRReworkData] = field(default_factory=list)


# Review efficiency


@dataclass(frozen=True, slots=True)
class ReviewPhases:
    """Durations between consecutive review milestones, in hours."""

    time_to_first_review_hours: Optional[float]
    review_duration_hours: Optional[float]
    time_to_merge_hours: Optional[float]
    total_time_hours: Optional[float]


@dataclass(slots=True)
class PRReviewData:
    pr_number: int
    title: str
    repository: str
    created_at: str
    ready_for_review_at: str
    first_review_at: Optional[str]
    approved_at: Optional[str]
    merged_at: Optional[str]
    phases: ReviewPhases


@dataclass(slots=True)
class ReviewEfficiencyMetrics:
    period: str
    pr_count: int
    time_to_first_review: Statistics
    review_duration: Statistics
    time_to_merge: Statistics
    total_time: Statistics
    pr_details: List[PRReviewData] = field(default_factory=list)


# PR size


@dataclass(slots=True)
class PRSizeData:
    pr_number: int
    title: str
    repository: str
    created_at: str
    merged_at: Optional[str]
    additions: int
    deletions: int
    lines_of_code: int
    files_changed: int


@dataclass(slots=True)
class PRSizeMetrics:
    period: str
    pr_count: int
    lines_of_code: Statistics
    files_changed: Statistics
    pr_details: List[PRSizeData] = field(default_factory=list)


# PR cycle time


@dataclass(slots=True)
class PRCycleTime:
    """PR creation to merge; the linked issue, if any, is informational only."""

    pr_number: int
    title: str
    repository: str
    pr_created_at: str
    pr_merged_at: Optional[str]
    pr_cycle_time_hours: Optional[float]
    base_branch: str
    linked_issue_number: Optional[int] = None


@dataclass(slots=True)
class PRCycleTimeMetrics:
    period: str
    merged_pr_count: int
    stats: Statistics
    pr_details: List[PRCycleTime] = field(default_factory=list)


# Repository summary


@dataclass(slots=True)
class RepositoryMetrics:
    """Every metric computed for one repository over one period."""

    repository: str
    period: str
    dora: DevOpsMetrics
    cycle_time: CycleTimeMetrics
    coding_time: CodingTimeMetrics
    rework: ReworkRateMetrics
    review: ReviewEfficiencyMetrics
    pr_size: PRSizeMetrics
    pr_cycle_time: PRCycleTimeMetrics
    health: str
