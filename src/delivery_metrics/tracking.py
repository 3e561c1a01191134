"""PR chain tracking towards the production branch.

A change typically reaches production through several merges, for example
``feature -> main -> staging -> production``. Starting from one pull request,
:func:`track_to_production` follows the chain one merge at a time:

- Commit-based lookup finds the PR whose history contains the previous merge
  commit. This is exact but breaks with squash or rebase merges.
- Branch-based lookup (optional, see
  :class:`~delivery_metrics.fetcher.BranchFallbackFetcher`) finds the earliest PR from
  the previous base branch merged at or after the previous merge. It recovers
  squash/rebase chains at the cost of precision.

The walk is bounded by ``MAX_PR_CHAIN_DEPTH`` fetches.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, cast

from .errors import ApiError, DataValidationError
from .fetcher import BranchFallbackFetcher, PRFetcher
from .models import PRChainItem, PullRequestRef, TrackResult
from .timeutils import parse_timestamp

logger = logging.getLogger(__name__)

MAX_PR_CHAIN_DEPTH = 5

_UNKNOWN_BRANCH = "unknown"

# Failures that end a lookup (or a chain) instead of the whole run.
_FETCH_ERRORS = (ApiError, DataValidationError)


def matches_production(branch: Optional[str], production_pattern: str) -> bool:
    """Return whether ``branch`` contains ``production_pattern`` case-insensitively.

    An empty pattern never matches.
    """
    if not branch or not production_pattern:
        return False
    return production_pattern.lower() in branch.lower()


def _supports_branch_fallback(fetcher: PRFetcher) -> bool:
    return callable(getattr(fetcher, "find_next_pr_by_branch", None))


def _find_next_pr_number(
    fetcher: PRFetcher,
    pr: PullRequestRef,
    log: logging.Logger,
) -> Optional[int]:
    """Locate the PR that carried ``pr``'s merge further down the chain."""
    find_by_commit = getattr(fetcher, "find_pr_by_commit", None)
    if pr.merge_commit_sha and callable(find_by_commit):
        try:
            next_number = find_by_commit(pr.merge_commit_sha, pr.number)
        except _FETCH_ERRORS as exc:
            log.debug(
                "Commit lookup failed",
                extra={"pr_number": pr.number, "commit_sha": pr.merge_commit_sha, "error": str(exc)},
            )
            next_number = None
        if next_number is not None and next_number != pr.number:
            return next_number

    if not _supports_branch_fallback(fetcher) or not pr.base_branch or not pr.merged_at:
        return None
    branch_fetcher = cast(BranchFallbackFetcher, fetcher)

    log.debug(
        "Commit tracking failed, trying branch fallback",
        extra={"pr_number": pr.number, "head_branch": pr.base_branch},
    )
    try:
        candidate = branch_fetcher.find_next_pr_by_branch(pr.base_branch, pr.merged_at)
    except _FETCH_ERRORS as exc:
        log.debug(
            "Branch lookup failed",
            extra={"pr_number": pr.number, "head_branch": pr.base_branch, "error": str(exc)},
        )
        return None

    if candidate is None:
        return None

    log.debug(
        "Found next PR via branch fallback",
        extra={"pr_number": candidate.number, "base_branch": candidate.base_branch},
    )
    return candidate.number


def track_to_production(
    fetcher: PRFetcher,
    start_pr_number: int,
    production_pattern: str,
    log: Optional[logging.Logger] = None,
) -> TrackResult:
    """Follow the PR chain starting at ``start_pr_number`` until production.

    Each iteration fetches one PR and appends it to the chain. Tracking stops
    when a merged PR targets a branch matching ``production_pattern``
    (found), when a PR is unmerged, unresolvable or has no successor (dead
    end), or after ``MAX_PR_CHAIN_DEPTH`` steps.

    Args:
        fetcher: PR lookup capability.
        start_pr_number: PR number to start from.
        production_pattern: Substring identifying the production branch.
        log: Optional logger for diagnostics; defaults to this module's logger.

    Returns:
        ``TrackResult`` with the production merge time (or ``None``) and the
        traversed chain, oldest first. Dead ends keep their partial chain.
    """
    log = log or logger
    chain: List[PRChainItem] = []
    current: Optional[int] = start_pr_number

    for _ in range(MAX_PR_CHAIN_DEPTH):
        if current is None:
            break

        try:
            pr = fetcher.get_pr(current)
        except _FETCH_ERRORS as exc:
            log.warning("Failed to fetch PR", extra={"pr_number": current, "error": str(exc)})
            break

        if pr is None:
            log.warning("PR not found", extra={"pr_number": current})
            break

        chain.append(
            PRChainItem(
                pr_number=pr.number,
                base_branch=pr.base_branch or _UNKNOWN_BRANCH,
                head_branch=pr.head_branch or _UNKNOWN_BRANCH,
                merged_at=pr.merged_at,
            )
        )

        if pr.merged_at and matches_production(pr.base_branch, production_pattern):
            log.info(
                "Found production merge",
                extra={"pr_number": pr.number, "base_branch": pr.base_branch, "merged_at": pr.merged_at},
            )
            return TrackResult(production_merged_at=pr.merged_at, pr_chain=chain)

        if not pr.merged_at:
            break

        current = _find_next_pr_number(fetcher, pr, log)

    return TrackResult(production_merged_at=None, pr_chain=chain)


def select_best_track_result(results: Sequence[Optional[TrackResult]]) -> TrackResult:
    """Pick the chain that reached production first.

    Results that reached production win, earliest production merge first.
    When none reached production, the first non-null result is returned.
    When every input is ``None`` an empty result is returned.
    """
    best: Optional[TrackResult] = None

    for result in results:
        if result is None:
            continue

        if result.production_merged_at:
            if best is None or not best.production_merged_at:
                best = result
                continue
            candidate_at = parse_timestamp(result.production_merged_at)
            best_at = parse_timestamp(best.production_merged_at)
            if candidate_at is not None and best_at is not None and candidate_at < best_at:
                best = result
        elif best is None:
            best = result

    if best is None:
        return TrackResult(production_merged_at=None, pr_chain=[])
    return best


def format_pr_chain(chain: Sequence[PRChainItem]) -> str:
    """Render a chain as ``"#10 → #25 → #40"``."""
    return " → ".join(f"#{item.pr_number}" for item in chain)
