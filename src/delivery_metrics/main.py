"""Application entry point for the delivery metrics engine."""

from __future__ import annotations

import logging
import sys

from .cli import parse_args
from .collector import collect_repository_metrics, measurement_window
from .config import load_config
from .errors import ApiError, AuthenticationError, ConfigurationError, DataValidationError
from .github_client import GitHubClient
from .stats import generate_report

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_CONFIGURATION = 2
EXIT_AUTHENTICATION = 3
EXIT_API = 4
EXIT_DATA_VALIDATION = 5


def orchestrate_metrics_generation() -> int:
    """Run the end-to-end metrics workflow and return a process exit code.

    Workflow:
    1. Parse CLI arguments and configure logging.
    2. Load and validate configuration (including ``GITHUB_TOKEN``).
    3. Fetch repository activity for the requested window.
    4. Compute DORA and extended metrics.
    5. Print the text report.

    Returns:
        ``0`` on success, ``2`` for configuration errors, ``3`` for
        authentication errors, ``4`` for API errors, ``5`` for malformed API
        data and ``1`` for anything unexpected.
    """
    try:
        args = parse_args()
        logging.basicConfig(
            level=getattr(logging, args.log_level, logging.WARNING),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

        config = load_config(
            owner=args.owner,
            repo=args.repo,
            days=args.days,
            production_pattern=args.production_pattern,
            deploy_workflow_patterns=args.deploy_patterns,
            environment_pattern=args.environment,
        )
        client = GitHubClient(config=config)

        since, until = measurement_window(config.days)
        print(f"Fetching the last {config.days} days of activity for '{config.full_name}'...")

        metrics = collect_repository_metrics(client=client, config=config, since=since, until=until)

        report = generate_report(
            repo_name=metrics.repository,
            dora=metrics.dora,
            cycle_time=metrics.cycle_time,
            coding_time=metrics.coding_time,
            rework=metrics.rework,
            review=metrics.review,
            pr_size=metrics.pr_size,
            pr_cycle_time=metrics.pr_cycle_time,
            health=metrics.health,
        )
        print(report)
        return EXIT_OK
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIGURATION
    except AuthenticationError as exc:
        print(f"Authentication error: {exc}", file=sys.stderr)
        return EXIT_AUTHENTICATION
    except ApiError as exc:
        print(f"GitHub API error: {exc}", file=sys.stderr)
        return EXIT_API
    except DataValidationError as exc:
        print(f"Data validation error: {exc}", file=sys.stderr)
        return EXIT_DATA_VALIDATION
    except Exception:
        logger.exception("Unexpected error while generating delivery metrics")
        return EXIT_UNEXPECTED


def main() -> None:
    """Console script entry point."""
    sys.exit(orchestrate_metrics_generation())


if __name__ == "__main__":
    main()
