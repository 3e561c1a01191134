"""Tests for extended flow metric calculators."""

import sys
from pathlib import Path
from typing import Optional

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from delivery_metrics.extended import (
    build_coding_time_entry,
    build_cycle_time_entry,
    build_pr_cycle_time_entries,
    build_pr_size_entry,
    build_review_entry,
    build_rework_entry,
    calculate_coding_time,
    calculate_cycle_time,
    calculate_pr_cycle_time,
    calculate_pr_size,
    calculate_review_efficiency,
    calculate_review_phases,
    calculate_rework_rate,
    collect_cycle_time_entries,
)
from delivery_metrics.models import (
    Issue,
    PRChainItem,
    PullRequest,
    PullRequestRef,
    Review,
    TrackResult,
)

PERIOD = "2024-01-01 to 2024-01-31"


def _issue(number: int, created_at: str = "2024-01-01T00:00:00Z") -> Issue:
    return Issue(number=number, title=f"Issue {number}", repository="acme/api", created_at=created_at)


def _pr(
    number: int,
    created_at: str = "2024-01-01T00:00:00Z",
    merged_at: Optional[str] = "2024-01-02T00:00:00Z",
    base_branch: Optional[str] = "main",
    additions: int = 0,
    deletions: int = 0,
    changed_files: int = 0,
) -> PullRequest:
    return PullRequest(
        number=number,
        title=f"PR {number}",
        repository="acme/api",
        author="dev",
        state="closed" if merged_at else "open",
        created_at=created_at,
        merged_at=merged_at,
        base_branch=base_branch,
        head_branch=f"feature-{number}",
        additions=additions,
        deletions=deletions,
        changed_files=changed_files,
    )


class DictFetcher:
    def __init__(self, prs, commits):
        self.prs = prs
        self.commits = commits

    def get_pr(self, pr_number):
        return self.prs.get(pr_number)

    def find_pr_by_commit(self, commit_sha, exclude_pr_number):
        return self.commits.get(commit_sha)


def test_build_cycle_time_entry_completed_issue():
    """Verify cycle time is issue creation to production merge, rounded."""
    chain = [
        PRChainItem(1, "main", "feature", "2024-01-01T12:00:00Z"),
        PRChainItem(2, "production", "main", "2024-01-02T01:15:00Z"),
    ]
    entry = build_cycle_time_entry(_issue(7), TrackResult("2024-01-02T01:15:00Z", chain))

    assert entry.cycle_time_hours == 25.3
    assert entry.pr_chain_summary == "#1 → #2"
    assert entry.production_merged_at == "2024-01-02T01:15:00Z"


def test_calculate_cycle_time_excludes_issues_not_in_production():
    """Verify only issues that reached production contribute."""
    done = build_cycle_time_entry(
        _issue(1),
        TrackResult("2024-01-01T10:00:00Z", [PRChainItem(1, "production", "main", "2024-01-01T10:00:00Z")]),
    )
    pending = build_cycle_time_entry(_issue(2), TrackResult(None, [PRChainItem(2, "main", "f", None)]))

    metrics = calculate_cycle_time([done, pending], PERIOD)

    assert metrics.completed_task_count == 1
    assert metrics.stats.avg == 10.0
    assert metrics.stats.median == 10.0
    assert [entry.issue_number for entry in metrics.issue_details] == [1]


def test_calculate_cycle_time_empty_has_no_statistics():
    """Verify an empty period yields None statistics, not zero."""
    metrics = calculate_cycle_time([], PERIOD)

    assert metrics.completed_task_count == 0
    assert metrics.stats.avg is None
    assert metrics.stats.median is None
    assert metrics.issue_details == []


def test_collect_cycle_time_entries_picks_earliest_production_chain():
    """Verify the earliest of several linked PR chains is reported."""
    prs = {
        1: PullRequestRef(1, "production", "hotfix", "2024-01-03T00:00:00Z", "sha-1"),
        2: PullRequestRef(2, "production", "main", "2024-01-02T00:00:00Z", "sha-2"),
    }
    fetcher = DictFetcher(prs, {})

    entries = collect_cycle_time_entries(fetcher, [_issue(5), _issue(6)], {5: [1, 2]}, "production")

    assert entries[0].production_merged_at == "2024-01-02T00:00:00Z"
    assert entries[0].cycle_time_hours == 24.0
    assert entries[1].production_merged_at is None
    assert entries[1].pr_chain == []


def test_coding_time_uses_earliest_linked_pr():
    """Verify coding time measures issue creation to the first linked PR."""
    linked = [
        _pr(3, created_at="2024-01-01T08:00:00Z"),
        _pr(2, created_at="2024-01-01T05:30:00Z"),
    ]

    entry = build_coding_time_entry(_issue(1), linked)

    assert entry.pr_number == 2
    assert entry.coding_time_hours == 5.5


def test_calculate_coding_time_excludes_negative_and_missing_values():
    """Verify PRs predating their issue and issues without PRs are excluded."""
    positive = build_coding_time_entry(_issue(1), [_pr(1, created_at="2024-01-01T04:00:00Z")])
    negative = build_coding_time_entry(
        _issue(2, created_at="2024-01-02T00:00:00Z"), [_pr(2, created_at="2024-01-01T00:00:00Z")]
    )
    missing = build_coding_time_entry(_issue(3), [])

    metrics = calculate_coding_time([positive, negative, missing], PERIOD)

    assert missing.coding_time_hours is None
    assert metrics.issue_count == 1
    assert metrics.stats.avg == 4.0


def test_rework_counts_commits_after_pr_creation():
    """Verify commits dated after PR creation count as additional commits."""
    pr = _pr(1, created_at="2024-01-01T10:00:00Z")
    entry = build_rework_entry(
        pr,
        ["2024-01-01T09:00:00Z", "2024-01-01T11:00:00Z", "2024-01-01T12:00:00Z"],
        force_push_count=2,
    )

    assert entry.total_commits == 3
    assert entry.additional_commits == 2
    assert entry.force_push_count == 2


def test_calculate_rework_rate_force_push_rate():
    """Verify force push rate is the share of PRs with at least one force push."""
    entries = [
        build_rework_entry(_pr(1), ["2024-01-01T01:00:00Z"], force_push_count=3),
        build_rework_entry(_pr(2), [], force_push_count=0),
    ]

    metrics = calculate_rework_rate(entries, PERIOD)

    assert metrics.pr_count == 2
    assert metrics.additional_commits.avg == 0.5
    assert metrics.force_push_avg == 1.5
    assert metrics.force_push_rate == 50.0


def test_calculate_rework_rate_empty():
    """Verify an empty rework period reports no values."""
    metrics = calculate_rework_rate([], PERIOD)

    assert metrics.pr_count == 0
    assert metrics.force_push_rate is None
    assert metrics.additional_commits.avg is None


def test_calculate_review_phases_all_present():
    """Verify each review phase is computed between its own endpoints."""
    phases = calculate_review_phases(
        "2024-01-01T00:00:00Z",
        "2024-01-01T02:00:00Z",
        "2024-01-01T05:00:00Z",
        "2024-01-01T06:30:00Z",
    )

    assert phases.time_to_first_review_hours == 2.0
    assert phases.review_duration_hours == 3.0
    assert phases.time_to_merge_hours == 1.5
    assert phases.total_time_hours == 6.5


def test_calculate_review_phases_missing_approval_keeps_other_phases():
    """Verify a missing approval only blanks the phases that need it."""
    phases = calculate_review_phases("2024-01-01T00:00:00Z", "2024-01-01T01:00:00Z", None, "2024-01-01T03:00:00Z")

    assert phases.time_to_first_review_hours == 1.0
    assert phases.review_duration_hours is None
    assert phases.time_to_merge_hours is None
    assert phases.total_time_hours == 3.0


def test_build_review_entry_defaults_ready_time_to_creation():
    """Verify PR creation stands in for an unknown ready-for-review time."""
    pr = _pr(1, created_at="2024-01-01T00:00:00Z", merged_at="2024-01-01T10:00:00Z")
    reviews = [
        Review(submitted_at="2024-01-01T06:00:00Z", state="APPROVED"),
        Review(submitted_at="2024-01-01T03:00:00Z", state="CHANGES_REQUESTED"),
    ]

    entry = build_review_entry(pr, None, reviews)

    assert entry.ready_for_review_at == "2024-01-01T00:00:00Z"
    assert entry.first_review_at == "2024-01-01T03:00:00Z"
    assert entry.approved_at == "2024-01-01T06:00:00Z"
    assert entry.phases.time_to_first_review_hours == 3.0
    assert entry.phases.time_to_merge_hours == 4.0


def test_calculate_review_efficiency_aggregates_phases_independently():
    """Verify PRs without reviews still count but do not skew phase statistics."""
    reviewed = build_review_entry(
        _pr(1, merged_at="2024-01-01T10:00:00Z"),
        "2024-01-01T00:00:00Z",
        [Review("2024-01-01T04:00:00Z", "APPROVED")],
    )
    unreviewed = build_review_entry(_pr(2, merged_at="2024-01-01T02:00:00Z"), None, [])

    metrics = calculate_review_efficiency([reviewed, unreviewed], PERIOD)

    assert metrics.pr_count == 2
    assert metrics.time_to_first_review.avg == 4.0
    assert metrics.total_time.avg == 6.0


def test_pr_size_lines_are_additions_plus_deletions():
    """Verify lines of code is additions plus deletions for merged PRs only."""
    merged = build_pr_size_entry(_pr(1, additions=120, deletions=30, changed_files=4))
    unmerged = build_pr_size_entry(_pr(2, merged_at=None, additions=10))

    assert merged.lines_of_code == 150
    assert unmerged is None

    metrics = calculate_pr_size([merged], PERIOD)

    assert metrics.pr_count == 1
    assert metrics.lines_of_code.avg == 150.0
    assert metrics.files_changed.max == 4


def test_pr_cycle_time_excludes_base_branches():
    """Verify merges into excluded base branches are skipped."""
    prs = [
        _pr(1, created_at="2024-01-01T00:00:00Z", merged_at="2024-01-01T12:00:00Z"),
        _pr(2, created_at="2024-01-01T00:00:00Z", merged_at="2024-01-02T00:00:00Z", base_branch="production"),
        _pr(3, merged_at=None),
    ]

    entries = build_pr_cycle_time_entries(prs, exclude_base_branches=["production"])
    metrics = calculate_pr_cycle_time(entries, PERIOD)

    assert [entry.pr_number for entry in entries] == [1]
    assert metrics.merged_pr_count == 1
    assert metrics.stats.avg == 12.0


def test_pr_cycle_time_median_of_even_sample():
    """Verify the median of an even sample is the mean of the middle values."""
    prs = [
        _pr(1, created_at="2024-01-01T00:00:00Z", merged_at="2024-01-01T01:00:00Z"),
        _pr(2, created_at="2024-01-01T00:00:00Z", merged_at="2024-01-01T02:00:00Z"),
        _pr(3, created_at="2024-01-01T00:00:00Z", merged_at="2024-01-01T04:00:00Z"),
        _pr(4, created_at="2024-01-01T00:00:00Z", merged_at="2024-01-01T10:00:00Z"),
    ]

    metrics = calculate_pr_cycle_time(build_pr_cycle_time_entries(prs), PERIOD)

    assert metrics.stats.median == 3.0
    assert metrics.stats.avg == 4.3
    assert metrics.stats.min == 1.0
    assert metrics.stats.max == 10.0


def test_pr_cycle_time_rows_carry_linked_issue_number():
    """Verify rows record the issue linked to each PR, when one exists."""
    prs = [
        _pr(1, created_at="2024-01-01T00:00:00Z", merged_at="2024-01-01T02:00:00Z"),
        _pr(2, created_at="2024-01-01T00:00:00Z", merged_at="2024-01-01T04:00:00Z"),
    ]

    entries = build_pr_cycle_time_entries(prs, linked_issues={1: 42})

    assert [entry.linked_issue_number for entry in entries] == [42, None]


def test_collect_cycle_time_entries_is_deterministic():
    """Verify identical snapshots and fetcher answers produce identical rows."""
    prs = {
        10: PullRequestRef(10, "main", "feature", "2024-01-01T10:00:00Z", "sha-10"),
        25: PullRequestRef(25, "production", "main", "2024-01-02T10:00:00Z", "sha-25"),
    }
    issues = [_issue(1), _issue(2, created_at="2024-01-01T06:00:00Z")]
    linked = {1: [10], 2: [25, 10]}

    first = collect_cycle_time_entries(DictFetcher(prs, {"sha-10": 25}), issues, linked, "production")
    second = collect_cycle_time_entries(DictFetcher(prs, {"sha-10": 25}), issues, linked, "production")

    assert first == second
    assert calculate_cycle_time(first, PERIOD) == calculate_cycle_time(second, PERIOD)
    assert [entry.cycle_time_hours for entry in first] == [34.0, 28.0]
