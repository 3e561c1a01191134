"""Command-line argument parsing for the delivery metrics engine."""

from __future__ import annotations

import argparse

from .config import DEFAULT_ENVIRONMENT_PATTERN, DEFAULT_PRODUCTION_PATTERN

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _positive_int(value: str) -> int:
    """Parse and validate a positive integer CLI value.

    Args:
        value: Raw command-line argument value.

    Returns:
        The validated positive integer.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive integer.
    """
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("must be an integer") from exc

    if parsed <= 0:
        raise argparse.ArgumentTypeError("must be greater than 0")

    return parsed


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments for metrics generation.

    Returns:
        Parsed CLI arguments containing repository coordinates, days of history,
        matching patterns and log level. ``deploy_patterns`` is ``None`` when no
        ``--deploy-pattern`` was given.
    """
    parser = argparse.ArgumentParser(
        prog="delivery-metrics",
        description=(
            "Generate DORA and flow metrics for a GitHub repository "
            "(deployment frequency, lead time, failure rate, recovery, cycle time)."
        ),
    )

    parser.add_argument(
        "--owner",
        required=True,
        help="GitHub organization or user that owns the repository.",
    )
    parser.add_argument(
        "--repo",
        required=True,
        help="GitHub repository name to analyze.",
    )
    parser.add_argument(
        "--days",
        type=_positive_int,
        default=30,
        help="Number of days of history to analyze (default: 30).",
    )
    parser.add_argument(
        "--production-pattern",
        default=DEFAULT_PRODUCTION_PATTERN,
        help=(
            "Substring identifying the production branch, matched "
            f"case-insensitively (default: {DEFAULT_PRODUCTION_PATTERN})."
        ),
    )
    parser.add_argument(
        "--deploy-pattern",
        dest="deploy_patterns",
        action="append",
        default=None,
        help="Workflow name substring counted as a deployment (repeatable, default: deploy).",
    )
    parser.add_argument(
        "--environment",
        default=DEFAULT_ENVIRONMENT_PATTERN,
        help=f"Substring identifying production deployment environments (default: {DEFAULT_ENVIRONMENT_PATTERN}).",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=_LOG_LEVELS,
        default="WARNING",
        help="Logging verbosity (default: WARNING).",
    )

    return parser.parse_args()
