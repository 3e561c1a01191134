"""Extended flow metric calculators.

This module turns issue and pull request snapshots into per-entity detail rows
and period-level statistics for:
- Cycle Time (issue creation to production merge, via PR chain tracking)
- Coding Time (issue creation to first linked PR creation)
- Rework Rate (commits pushed after PR creation, force pushes)
- Review Efficiency (ready for review, first review, approval, merge)
- PR Size (lines and files changed)
- PR Cycle Time (PR creation to merge)

Every calculator follows the same shape: build detail rows, drop rows lacking
the measured value, aggregate with :func:`~delivery_metrics.stats.calculate_stats`.
Empty inputs produce ``None`` statistics and no detail rows.
"""

from __future__ import annotations

import logging
from typing import List, Mapping, Optional, Sequence

from .fetcher import PRFetcher
from .models import (
    CodingTimeMetrics,
    CycleTimeMetrics,
    Issue,
    IssueCodingTime,
    IssueCycleTime,
    PRCycleTime,
    PRCycleTimeMetrics,
    PRReviewData,
    PRReworkData,
    PRSizeData,
    PRSizeMetrics,
    PullRequest,
    Review,
    ReviewEfficiencyMetrics,
    ReviewPhases,
    ReworkRateMetrics,
    TrackResult,
)
from .stats import calculate_stats, round_hours
from .timeutils import hours_between, parse_timestamp
from .tracking import format_pr_chain, select_best_track_result, track_to_production

logger = logging.getLogger(__name__)


def _rounded_hours_between(start: Optional[str], end: Optional[str]) -> Optional[float]:
    hours = hours_between(start, end)
    if hours is None:
        return None
    return round_hours(hours)


# ---------------------------------------------------------------------------
# Cycle time
# ---------------------------------------------------------------------------


def build_cycle_time_entry(issue: Issue, track_result: TrackResult) -> IssueCycleTime:
    """Build the cycle time detail row for one issue from its best chain."""
    cycle_time_hours = (
        _rounded_hours_between(issue.created_at, track_result.production_merged_at)
        if track_result.production_merged_at
        else None
    )

    return IssueCycleTime(
        issue_number=issue.number,
        issue_title=issue.title,
        repository=issue.repository,
        issue_created_at=issue.created_at,
        production_merged_at=track_result.production_merged_at,
        cycle_time_hours=cycle_time_hours,
        pr_chain=list(track_result.pr_chain),
        pr_chain_summary=format_pr_chain(track_result.pr_chain),
    )


def collect_cycle_time_entries(
    fetcher: PRFetcher,
    issues: Sequence[Issue],
    linked_prs: Mapping[int, Sequence[int]],
    production_pattern: str,
    log: Optional[logging.Logger] = None,
) -> List[IssueCycleTime]:
    """Track every linked PR of every issue and build cycle time detail rows.

    When an issue links several PRs, each starts an independent chain and the
    chain that reached production earliest is reported.

    Args:
        fetcher: PR lookup capability used for chain tracking.
        issues: Issues to measure.
        linked_prs: PR numbers linked to each issue, keyed by issue number.
        production_pattern: Substring identifying the production branch.
        log: Optional logger for diagnostics.
    """
    log = log or logger
    entries: List[IssueCycleTime] = []

    for issue in issues:
        pr_numbers = list(linked_prs.get(issue.number, ()))
        if not pr_numbers:
            log.debug("No linked PRs found", extra={"issue_number": issue.number})
            entries.append(build_cycle_time_entry(issue, TrackResult(production_merged_at=None)))
            continue

        results = [
            track_to_production(fetcher, pr_number, production_pattern, log=log)
            for pr_number in pr_numbers
        ]
        entries.append(build_cycle_time_entry(issue, select_best_track_result(results)))

    return entries


def calculate_cycle_time(entries: Sequence[IssueCycleTime], period: str) -> CycleTimeMetrics:
    """Aggregate cycle time over issues whose change reached production."""
    completed = [
        entry
        for entry in entries
        if entry.production_merged_at is not None and entry.cycle_time_hours is not None
    ]
    stats = calculate_stats([entry.cycle_time_hours for entry in completed])

    logger.info(
        "Calculated cycle time",
        extra={"period": period, "issues_total": len(entries), "completed_issues": len(completed)},
    )

    return CycleTimeMetrics(
        period=period,
        completed_task_count=len(completed),
        stats=stats,
        issue_details=completed,
    )


# ---------------------------------------------------------------------------
# Coding time
# ---------------------------------------------------------------------------


def build_coding_time_entry(issue: Issue, linked_prs: Sequence[PullRequest]) -> IssueCodingTime:
    """Build the coding time detail row from the earliest-created linked PR."""
    dated = [pr for pr in linked_prs if parse_timestamp(pr.created_at) is not None]

    if not dated:
        return IssueCodingTime(
            issue_number=issue.number,
            issue_title=issue.title,
            repository=issue.repository,
            issue_created_at=issue.created_at,
            pr_created_at=None,
            pr_number=None,
            coding_time_hours=None,
        )

    earliest = min(dated, key=lambda pr: parse_timestamp(pr.created_at))
    return IssueCodingTime(
        issue_number=issue.number,
        issue_title=issue.title,
        repository=issue.repository,
        issue_created_at=issue.created_at,
        pr_created_at=earliest.created_at,
        pr_number=earliest.number,
        coding_time_hours=_rounded_hours_between(issue.created_at, earliest.created_at),
    )


def calculate_coding_time(entries: Sequence[IssueCodingTime], period: str) -> CodingTimeMetrics:
    """Aggregate coding time; negative durations (PR predates issue) are excluded."""
    valid = [
        entry
        for entry in entries
        if entry.coding_time_hours is not None and entry.coding_time_hours >= 0
    ]
    excluded_negative = sum(
        1 for entry in entries if entry.coding_time_hours is not None and entry.coding_time_hours < 0
    )
    if excluded_negative:
        logger.debug(
            "Excluded negative coding times",
            extra={"period": period, "excluded_count": excluded_negative},
        )

    return CodingTimeMetrics(
        period=period,
        issue_count=len(valid),
        stats=calculate_stats([entry.coding_time_hours for entry in valid]),
        issue_details=valid,
    )


# ---------------------------------------------------------------------------
# Rework rate
# ---------------------------------------------------------------------------


def build_rework_entry(
    pr: PullRequest,
    commit_timestamps: Sequence[str],
    force_push_count: int,
) -> PRReworkData:
    """Count commits dated after PR creation as additional (rework) commits."""
    created_at = parse_timestamp(pr.created_at)
    additional = 0
    for timestamp in commit_timestamps:
        committed_at = parse_timestamp(timestamp)
        if created_at is not None and committed_at is not None and committed_at > created_at:
            additional += 1

    return PRReworkData(
        pr_number=pr.number,
        title=pr.title,
        repository=pr.repository,
        created_at=pr.created_at,
        merged_at=pr.merged_at,
        total_commits=len(commit_timestamps),
        additional_commits=additional,
        force_push_count=force_push_count,
    )


def calculate_rework_rate(entries: Sequence[PRReworkData], period: str) -> ReworkRateMetrics:
    """Aggregate additional commits and the share of PRs that were force pushed."""
    if not entries:
        return ReworkRateMetrics(
            period=period,
            pr_count=0,
            additional_commits=calculate_stats([]),
            force_push_avg=None,
            force_push_rate=None,
            pr_details=[],
        )

    force_pushed = sum(1 for entry in entries if entry.force_push_count > 0)
    total_force_pushes = sum(entry.force_push_count for entry in entries)

    return ReworkRateMetrics(
        period=period,
        pr_count=len(entries),
        additional_commits=calculate_stats([entry.additional_commits for entry in entries]),
        force_push_avg=round_hours(total_force_pushes / len(entries)),
        force_push_rate=round_hours(force_pushed / len(entries) * 100),
        pr_details=list(entries),
    )


# ---------------------------------------------------------------------------
# Review efficiency
# ---------------------------------------------------------------------------


def calculate_review_phases(
    ready_for_review_at: Optional[str],
    first_review_at: Optional[str],
    approved_at: Optional[str],
    merged_at: Optional[str],
) -> ReviewPhases:
    """Compute the four review phase durations in hours.

    Phases are independent; each is ``None`` only when one of its own
    endpoints is missing:
    - time to first review: ready for review -> first review
    - review duration: first review -> approval
    - time to merge: approval -> merge
    - total time: ready for review -> merge
    """
    return ReviewPhases(
        time_to_first_review_hours=_rounded_hours_between(ready_for_review_at, first_review_at),
        review_duration_hours=_rounded_hours_between(first_review_at, approved_at),
        time_to_merge_hours=_rounded_hours_between(approved_at, merged_at),
        total_time_hours=_rounded_hours_between(ready_for_review_at, merged_at),
    )


def build_review_entry(
    pr: PullRequest,
    ready_for_review_at: Optional[str],
    reviews: Sequence[Review],
) -> PRReviewData:
    """Build the review detail row for one PR.

    The first submitted review starts the review; the first ``APPROVED``
    review ends it. When the ready-for-review time is unknown the PR creation
    time is used instead.
    """
    ready_at = ready_for_review_at or pr.created_at
    ordered = sorted(
        (review for review in reviews if parse_timestamp(review.submitted_at) is not None),
        key=lambda review: parse_timestamp(review.submitted_at),
    )

    first_review_at = ordered[0].submitted_at if ordered else None
    approved_at = next(
        (review.submitted_at for review in ordered if review.state.upper() == "APPROVED"),
        None,
    )

    return PRReviewData(
        pr_number=pr.number,
        title=pr.title,
        repository=pr.repository,
        created_at=pr.created_at,
        ready_for_review_at=ready_at,
        first_review_at=first_review_at,
        approved_at=approved_at,
        merged_at=pr.merged_at,
        phases=calculate_review_phases(ready_at, first_review_at, approved_at, pr.merged_at),
    )


def calculate_review_efficiency(entries: Sequence[PRReviewData], period: str) -> ReviewEfficiencyMetrics:
    """Aggregate each review phase separately over the PRs that have it."""
    phases = [entry.phases for entry in entries]

    def _values(attribute: str) -> List[float]:
        return [getattr(phase, attribute) for phase in phases if getattr(phase, attribute) is not None]

    return ReviewEfficiencyMetrics(
        period=period,
        pr_count=len(entries),
        time_to_first_review=calculate_stats(_values("time_to_first_review_hours")),
        review_duration=calculate_stats(_values("review_duration_hours")),
        time_to_merge=calculate_stats(_values("time_to_merge_hours")),
        total_time=calculate_stats(_values("total_time_hours")),
        pr_details=list(entries),
    )


# ---------------------------------------------------------------------------
# PR size
# ---------------------------------------------------------------------------


def build_pr_size_entry(pr: PullRequest) -> Optional[PRSizeData]:
    """Build the size detail row for a merged PR; ``None`` for unmerged PRs."""
    if not pr.merged_at:
        return None

    return PRSizeData(
        pr_number=pr.number,
        title=pr.title,
        repository=pr.repository,
        created_at=pr.created_at,
        merged_at=pr.merged_at,
        additions=pr.additions,
        deletions=pr.deletions,
        lines_of_code=pr.additions + pr.deletions,
        files_changed=pr.changed_files,
    )


def calculate_pr_size(entries: Sequence[PRSizeData], period: str) -> PRSizeMetrics:
    """Aggregate lines of code and files changed over merged PRs."""
    merged = [entry for entry in entries if entry.merged_at]

    return PRSizeMetrics(
        period=period,
        pr_count=len(merged),
        lines_of_code=calculate_stats([entry.lines_of_code for entry in merged]),
        files_changed=calculate_stats([entry.files_changed for entry in merged]),
        pr_details=merged,
    )


# ---------------------------------------------------------------------------
# PR cycle time
# ---------------------------------------------------------------------------


def build_pr_cycle_time_entries(
    prs: Sequence[PullRequest],
    exclude_base_branches: Sequence[str] = (),
    linked_issues: Optional[Mapping[int, int]] = None,
) -> List[PRCycleTime]:
    """Build creation-to-merge rows for merged PRs.

    PRs whose base branch contains any of ``exclude_base_branches`` are skipped,
    for example release merges into the production branch. ``linked_issues``
    maps PR numbers to the issue they resolve and is copied onto the rows.
    """
    entries: List[PRCycleTime] = []

    for pr in prs:
        if not pr.merged_at:
            continue
        if pr.base_branch and any(
            pattern and pattern in pr.base_branch for pattern in exclude_base_branches
        ):
            logger.debug(
                "Skipping PR with excluded base branch",
                extra={"pr_number": pr.number, "base_branch": pr.base_branch},
            )
            continue

        entries.append(
            PRCycleTime(
                pr_number=pr.number,
                title=pr.title,
                repository=pr.repository,
                pr_created_at=pr.created_at,
                pr_merged_at=pr.merged_at,
                pr_cycle_time_hours=_rounded_hours_between(pr.created_at, pr.merged_at),
                base_branch=pr.base_branch or "",
                linked_issue_number=(linked_issues or {}).get(pr.number),
            )
        )

    return entries


def calculate_pr_cycle_time(entries: Sequence[PRCycleTime], period: str) -> PRCycleTimeMetrics:
    """Aggregate PR creation-to-merge time over merged PRs."""
    valid = [
        entry
        for entry in entries
        if entry.pr_merged_at is not None and entry.pr_cycle_time_hours is not None
    ]

    return PRCycleTimeMetrics(
        period=period,
        merged_pr_count=len(valid),
        stats=calculate_stats([entry.pr_cycle_time_hours for entry in valid]),
        pr_details=valid,
    )
