"""The pull request lookup capability consumed by the chain tracker.

Implementations are transport specific (see
:class:`delivery_metrics.github_client.GitHubClient`); the tracker depends only
on this protocol. Transport and parse failures are reported by raising
:class:`~delivery_metrics.errors.ApiError` (a
:class:`~delivery_metrics.errors.DataValidationError` is tolerated the same
way); "not found" is a normal ``None``. Either ends one chain, never the run.
"""

from __future__ import annotations

from typing import Optional, Protocol

from .models import PullRequestRef


class PRFetcher(Protocol):
    """Looks up pull requests while following a merge chain."""

    def get_pr(self, pr_number: int) -> Optional[PullRequestRef]:
        """Return the pull request or ``None`` when it does not exist."""
        ...

    def find_pr_by_commit(self, commit_sha: str, exclude_pr_number: int) -> Optional[int]:
        """Return the number of a PR containing ``commit_sha``.

        ``exclude_pr_number`` is never returned, which prevents self-loops.
        """
        ...


class BranchFallbackFetcher(PRFetcher, Protocol):
    """A fetcher that can also follow chains by branch name."""

    def find_next_pr_by_branch(self, head_branch: str, merged_after: str) -> Optional[PullRequestRef]:
        """Return the earliest PR from ``head_branch`` merged at or after ``merged_after``."""
        ...
