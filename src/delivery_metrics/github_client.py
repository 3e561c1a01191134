"""GitHub REST API client for delivery metric data retrieval."""

from __future__ import annotations

import time
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests

from .config import Config
from .errors import ApiError, AuthenticationError, DataValidationError
from .models import Deployment, Issue, PullRequest, PullRequestRef, Review, WorkflowRun
from .timeutils import format_timestamp, parse_timestamp

_DEPLOYMENT_STATUSES = {"success", "failure", "error"}
_RUN_CONCLUSIONS = {"success", "failure"}


class GitHubClient:
    """Small, typed client for GitHub repository activity APIs.

    Besides listing snapshot records, the client implements the PR lookup
    operations used by :func:`delivery_metrics.tracking.track_to_production`.
    """

    _API_BASE = "https://api.github.com"
    _API_VERSION = "2022-11-28"
    _PAGE_SIZE = 100
    _MAX_PAGES = 10
    _MAX_RETRIES = 5
    _MAX_BACKOFF_SECONDS = 30

    def __init__(self, config: Config, timeout_seconds: int = 30) -> None:
        """Initialize an authenticated GitHub API client.

        Args:
            config: Validated runtime configuration including owner/repo/token.
            timeout_seconds: Per-request timeout in seconds.
        """
        self._config = config
        self._timeout_seconds = timeout_seconds
        self._repo_url = f"{self._API_BASE}/repos/{config.owner}/{config.repo}"

        self._session = requests.Session()
        self._session.headers.update(
            {
                "Accept": "application/vnd.github+json",
                "Authorization": f"Bearer {config.token}",
                "X-GitHub-Api-Version": self._API_VERSION,
                "User-Agent": "delivery-metrics",
            }
        )

    def _build_url(self, path: str) -> str:
        """Build a fully qualified API URL from a path below the repository."""
        return f"{self._repo_url}/{path.lstrip('/')}"

    def _extract_backoff_seconds(self, response: requests.Response, attempt: int) -> int:
        """Compute exponential backoff seconds, honoring Retry-After when available."""
        retry_after_header = response.headers.get("Retry-After")
        if retry_after_header:
            try:
                retry_after_seconds = int(retry_after_header)
                return min(self._MAX_BACKOFF_SECONDS, max(1, retry_after_seconds))
            except ValueError:
                pass

        return min(self._MAX_BACKOFF_SECONDS, 2 ** (attempt - 1))

    def _get_json(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        allow_not_found: bool = False,
    ) -> Any:
        """Execute a GET request with retry logic for 429/5xx responses.

        Returns ``None`` for 404/422 responses when ``allow_not_found`` is set.

        Raises:
            AuthenticationError: If GitHub rejects the token (HTTP 401).
            ApiError: If the request repeatedly fails, returns HTTP >= 400,
                or does not return valid JSON.
        """
        url = self._build_url(path)
        last_error: Optional[Exception] = None

        for attempt in range(1, self._MAX_RETRIES + 1):
            try:
                response = self._session.get(url, params=params, timeout=self._timeout_seconds)
            except requests.RequestException as exc:
                last_error = exc
                if attempt == self._MAX_RETRIES:
                    raise ApiError(f"GitHub request failed after retries: GET {url}") from exc
                time.sleep(min(self._MAX_BACKOFF_SECONDS, 2 ** (attempt - 1)))
                continue

            status_code = response.status_code
            is_retryable = status_code == 429 or 500 <= status_code <= 599

            if is_retryable and attempt < self._MAX_RETRIES:
                time.sleep(self._extract_backoff_seconds(response, attempt))
                continue

            if allow_not_found and status_code in (404, 422):
                return None

            if status_code == 401:
                raise AuthenticationError(f"GitHub rejected the configured token: GET {url}")

            if status_code >= 400:
                raise ApiError(
                    f"GitHub API request failed: GET {url} returned {status_code} - {response.text}"
                )

            try:
                return response.json()
            except ValueError as exc:
                raise ApiError(f"GitHub API returned invalid JSON: GET {url}") from exc

        raise ApiError(f"GitHub request failed after retries: GET {url}") from last_error

    def _get_paginated(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        items_key: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Collect all pages of a list endpoint using ``per_page``/``page``.

        Stops at the first partial page or after ``_MAX_PAGES`` pages.
        """
        items: List[Dict[str, Any]] = []

        for page in range(1, self._MAX_PAGES + 1):
            query = dict(params or {})
            query["per_page"] = self._PAGE_SIZE
            query["page"] = page

            payload = self._get_json(path, params=query)
            page_items = payload.get(items_key, []) if items_key else payload
            if not isinstance(page_items, list):
                raise ApiError(f"GitHub API returned unexpected payload shape: GET {path}")

            items.extend(page_items)
            if len(page_items) < self._PAGE_SIZE:
                break

        return items

    def _timeline(self, issue_number: int) -> List[Dict[str, Any]]:
        return self._get_paginated(f"issues/{issue_number}/timeline")

    # -- parsing -------------------------------------------------------------

    def _to_ref(self, item: Dict[str, Any]) -> PullRequestRef:
        number = item.get("number")
        if number is None:
            raise DataValidationError(f"GitHub pull request payload is missing 'number': {item}")

        return PullRequestRef(
            number=int(number),
            base_branch=(item.get("base") or {}).get("ref"),
            head_branch=(item.get("head") or {}).get("ref"),
            merged_at=item.get("merged_at"),
            merge_commit_sha=item.get("merge_commit_sha"),
        )

    def _to_pull_request(self, item: Dict[str, Any]) -> PullRequest:
        number = item.get("number")
        created_at = item.get("created_at")
        if number is None or not created_at:
            raise DataValidationError(
                "GitHub pull request payload is missing required fields: "
                f"repo={self._config.full_name}, payload={item}"
            )

        return PullRequest(
            number=int(number),
            title=str(item.get("title") or ""),
            repository=self._config.full_name,
            author=str((item.get("user") or {}).get("login") or ""),
            state=str(item.get("state") or ""),
            created_at=created_at,
            merged_at=item.get("merged_at"),
            closed_at=item.get("closed_at"),
            base_branch=(item.get("base") or {}).get("ref"),
            head_branch=(item.get("head") or {}).get("ref"),
            merge_commit_sha=item.get("merge_commit_sha"),
            additions=int(item.get("additions") or 0),
            deletions=int(item.get("deletions") or 0),
            changed_files=int(item.get("changed_files") or 0),
        )

    # -- PR chain lookups ------------------------------------------------------

    def _to_chain_ref(self, item: Any) -> PullRequestRef:
        """Parse a chain reference, reporting malformed payloads as ``ApiError``."""
        try:
            return self._to_ref(item)
        except (DataValidationError, AttributeError, TypeError, ValueError) as exc:
            raise ApiError(f"GitHub returned a malformed pull request payload: {exc}") from exc

    def get_pr(self, pr_number: int) -> Optional[PullRequestRef]:
        """Fetch a pull request's branch and merge data; ``None`` when missing.

        Raises:
            ApiError: If the request fails or the payload is malformed.
        """
        payload = self._get_json(f"pulls/{pr_number}", allow_not_found=True)
        if payload is None:
            return None
        return self._to_chain_ref(payload)

    def find_pr_by_commit(self, commit_sha: str, exclude_pr_number: int) -> Optional[int]:
        """Find a PR associated with ``commit_sha`` other than ``exclude_pr_number``.

        Merged PRs are preferred over open or closed ones. Items without a
        PR number are ignored.
        """
        payload = self._get_json(f"commits/{commit_sha}/pulls", allow_not_found=True)
        if not payload:
            return None
        if not isinstance(payload, list):
            raise ApiError(f"GitHub API returned unexpected payload shape: GET commits/{commit_sha}/pulls")

        candidates = [
            item
            for item in payload
            if isinstance(item, dict)
            and item.get("number") is not None
            and item.get("number") != exclude_pr_number
        ]
        if not candidates:
            return None

        merged = next((item for item in candidates if item.get("merged_at")), None)
        target = merged or candidates[0]
        try:
            return int(target["number"])
        except (TypeError, ValueError) as exc:
            raise ApiError(f"GitHub returned a malformed pull request number: {target['number']!r}") from exc

    def find_next_pr_by_branch(self, head_branch: str, merged_after: str) -> Optional[PullRequestRef]:
        """Return the earliest PR from ``head_branch`` merged at or after ``merged_after``.

        Raises:
            ApiError: If the request fails or a candidate payload is malformed.
        """
        threshold = parse_timestamp(merged_after)
        if threshold is None:
            return None

        items = self._get_paginated(
            "pulls",
            params={"state": "closed", "head": f"{self._config.owner}:{head_branch}"},
        )

        candidates = []
        for item in items:
            try:
                merged_at = parse_timestamp(item.get("merged_at"))
            except (AttributeError, TypeError, ValueError) as exc:
                raise ApiError(f"GitHub returned a malformed pull request payload: {item!r}") from exc
            if merged_at is not None and merged_at >= threshold:
                candidates.append((merged_at, item))

        if not candidates:
            return None

        _, best = min(candidates, key=lambda candidate: candidate[0])
        return self._to_chain_ref(best)

    # -- snapshot listings -----------------------------------------------------

    def list_pull_requests(self, since: Optional[datetime] = None) -> List[PullRequest]:
        """List pull requests created at or after ``since`` (all when ``None``).

        Pages are requested newest first and listing stops at the first PR
        created before ``since``.
        """
        pull_requests: List[PullRequest] = []

        for page in range(1, self._MAX_PAGES + 1):
            payload = self._get_json(
                "pulls",
                params={
                    "state": "all",
                    "sort": "created",
                    "direction": "desc",
                    "per_page": self._PAGE_SIZE,
                    "page": page,
                },
            )

            reached_window_start = False
            for item in payload:
                pr = self._to_pull_request(item)
                if since is not None and parse_timestamp(pr.created_at) < since:
                    reached_window_start = True
                    break
                pull_requests.append(pr)

            if reached_window_start or len(payload) < self._PAGE_SIZE:
                break

        return pull_requests

    def get_pull_request(self, pr_number: int) -> Optional[PullRequest]:
        """Fetch full pull request details, including size fields."""
        payload = self._get_json(f"pulls/{pr_number}", allow_not_found=True)
        if payload is None:
            return None
        return self._to_pull_request(payload)

    def list_issues(self, since: Optional[datetime] = None) -> List[Issue]:
        """List issues (not pull requests) created at or after ``since``."""
        params: Dict[str, Any] = {"state": "all"}
        if since is not None:
            params["since"] = format_timestamp(since)

        issues: List[Issue] = []
        for item in self._get_paginated("issues", params=params):
            if "pull_request" in item:
                continue
            created_at = item.get("created_at")
            if item.get("number") is None or not created_at:
                raise DataValidationError(f"GitHub issue payload is missing required fields: {item}")
            if since is not None and parse_timestamp(created_at) < since:
                continue
            issues.append(
                Issue(
                    number=int(item["number"]),
                    title=str(item.get("title") or ""),
                    repository=self._config.full_name,
                    created_at=created_at,
                )
            )

        return issues

    def list_linked_pull_requests(self, issue_number: int) -> List[int]:
        """Return numbers of same-repository PRs that cross-reference the issue."""
        numbers: List[int] = []

        for event in self._timeline(issue_number):
            if event.get("event") != "cross-referenced":
                continue
            source_issue = (event.get("source") or {}).get("issue") or {}
            if "pull_request" not in source_issue:
                continue
            repository = (source_issue.get("repository") or {}).get("full_name")
            if repository and repository != self._config.full_name:
                continue
            number = source_issue.get("number")
            if number is not None and int(number) not in numbers:
                numbers.append(int(number))

        return numbers

    def list_deployments(self, environment: Optional[str] = None) -> List[Deployment]:
        """List deployments with the state of their most recent status."""
        params: Dict[str, Any] = {}
        if environment:
            params["environment"] = environment

        deployments: List[Deployment] = []
        for item in self._get_paginated("deployments", params=params):
            deployment_id = item.get("id")
            statuses = self._get_json(f"deployments/{deployment_id}/statuses", params={"per_page": 1})
            state = statuses[0].get("state") if statuses else None
            if state is not None and state not in _DEPLOYMENT_STATUSES:
                state = "other"

            deployments.append(
                Deployment(
                    environment=str(item.get("environment") or ""),
                    created_at=item.get("created_at") or "",
                    status=state,
                )
            )

        return deployments

    def list_workflow_runs(self, since: Optional[datetime] = None) -> List[WorkflowRun]:
        """List workflow runs created at or after ``since``."""
        params: Dict[str, Any] = {}
        if since is not None:
            params["created"] = f">={since.date().isoformat()}"

        runs: List[WorkflowRun] = []
        for item in self._get_paginated("actions/runs", params=params, items_key="workflow_runs"):
            conclusion = item.get("conclusion")
            if conclusion is not None and conclusion not in _RUN_CONCLUSIONS:
                conclusion = "other"
            runs.append(
                WorkflowRun(
                    name=str(item.get("name") or ""),
                    created_at=item.get("created_at") or "",
                    conclusion=conclusion,
                )
            )

        return runs

    def list_pr_commit_timestamps(self, pr_number: int) -> List[str]:
        """Return committer timestamps for every commit on the pull request."""
        timestamps: List[str] = []
        for item in self._get_paginated(f"pulls/{pr_number}/commits"):
            committed_at = ((item.get("commit") or {}).get("committer") or {}).get("date")
            if committed_at:
                timestamps.append(committed_at)
        return timestamps

    def count_force_pushes(self, pr_number: int) -> int:
        """Count ``head_ref_force_pushed`` events on the pull request."""
        return sum(1 for event in self._timeline(pr_number) if event.get("event") == "head_ref_force_pushed")

    def list_reviews(self, pr_number: int) -> List[Review]:
        """List submitted reviews; pending reviews have no submission time and are skipped."""
        reviews: List[Review] = []
        for item in self._get_paginated(f"pulls/{pr_number}/reviews"):
            submitted_at = item.get("submitted_at")
            if not submitted_at:
                continue
            reviews.append(Review(submitted_at=submitted_at, state=str(item.get("state") or "")))
        return reviews

    def get_ready_for_review_at(self, pr_number: int) -> Optional[str]:
        """Return when a draft PR was marked ready for review, if it ever was."""
        for event in self._timeline(pr_number):
            if event.get("event") == "ready_for_review":
                return event.get("created_at")
        return None
