"""Configuration parsing and validation for the delivery metrics engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from .errors import AuthenticationError, ConfigurationError

DEFAULT_PRODUCTION_PATTERN = "production"
DEFAULT_DEPLOY_WORKFLOW_PATTERNS: Tuple[str, ...] = ("deploy",)
DEFAULT_ENVIRONMENT_PATTERN = "production"


@dataclass(frozen=True)
class Config:
    """Validated runtime settings used by the metrics engine."""

    owner: str
    repo: str
    days: int
    token: str
    production_pattern: str = DEFAULT_PRODUCTION_PATTERN
    deploy_workflow_patterns: Tuple[str, ...] = DEFAULT_DEPLOY_WORKFLOW_PATTERNS
    environment_pattern: str = DEFAULT_ENVIRONMENT_PATTERN

    @property
    def full_name(self) -> str:
        """Repository name in ``owner/repo`` form."""
        return f"{self.owner}/{self.repo}"


def load_config(
    owner: str,
    repo: str,
    days: int,
    production_pattern: str = DEFAULT_PRODUCTION_PATTERN,
    deploy_workflow_patterns: Optional[Iterable[str]] = None,
    environment_pattern: str = DEFAULT_ENVIRONMENT_PATTERN,
) -> Config:
    """Build and validate application configuration.

    Args:
        owner: GitHub organization or user owning the repository.
        repo: GitHub repository name.
        days: Positive number of days of history to analyze.
        production_pattern: Substring identifying the production branch.
        deploy_workflow_patterns: Workflow name substrings counted as deployments.
        environment_pattern: Substring identifying production deployment environments.

    Returns:
        A validated ``Config`` instance.

    Raises:
        ConfigurationError: If ``days`` is not greater than ``0`` or the
            repository coordinates are blank.
        AuthenticationError: If ``GITHUB_TOKEN`` is not configured.
    """
    if days <= 0:
        raise ConfigurationError("Invalid value for 'days': expected an integer greater than 0.")

    if not owner.strip() or not repo.strip():
        raise ConfigurationError("Repository owner and name must both be provided.")

    patterns = tuple(
        pattern.strip()
        for pattern in (deploy_workflow_patterns or DEFAULT_DEPLOY_WORKFLOW_PATTERNS)
        if pattern and pattern.strip()
    )
    if not patterns:
        raise ConfigurationError("At least one non-empty deploy workflow pattern is required.")

    token: str = os.getenv("GITHUB_TOKEN", "").strip()
    if not token:
        raise AuthenticationError(
            "Missing required GitHub token. "
            "Set the 'GITHUB_TOKEN' environment variable before running the metrics engine."
        )

    return Config(
        owner=owner.strip(),
        repo=repo.strip(),
        days=days,
        token=token,
        production_pattern=production_pattern,
        deploy_workflow_patterns=patterns,
        environment_pattern=environment_pattern,
    )
