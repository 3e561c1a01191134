"""Tests for application orchestration in the main module."""

import sys
from argparse import Namespace
from pathlib import Path
from unittest.mock import Mock, patch

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from delivery_metrics.config import Config
from delivery_metrics.errors import (
    ApiError,
    AuthenticationError,
    ConfigurationError,
    DataValidationError,
)
from delivery_metrics.main import orchestrate_metrics_generation


def _args() -> Namespace:
    return Namespace(
        owner="acme",
        repo="api",
        days=30,
        production_pattern="production",
        deploy_patterns=["deploy"],
        environment="production",
        log_level="INFO",
    )


def _config() -> Config:
    return Config(owner="acme", repo="api", days=30, token="secret")


def test_orchestrate_metrics_generation_success(capsys):
    """Verify orchestration returns 0 and wires components correctly on success."""
    config = _config()
    client = Mock()
    metrics = Mock()
    metrics.repository = "acme/api"

    with patch("delivery_metrics.main.parse_args", return_value=_args()) as parse_args_mock, patch(
        "delivery_metrics.main.load_config", return_value=config
    ) as load_config_mock, patch(
        "delivery_metrics.main.GitHubClient", return_value=client
    ) as client_ctor_mock, patch(
        "delivery_metrics.main.collect_repository_metrics", return_value=metrics
    ) as collect_mock, patch(
        "delivery_metrics.main.generate_report", return_value="REPORT"
    ) as report_mock:
        exit_code = orchestrate_metrics_generation()

    assert exit_code == 0
    parse_args_mock.assert_called_once_with()
    load_config_mock.assert_called_once_with(
        owner="acme",
        repo="api",
        days=30,
        production_pattern="production",
        deploy_workflow_patterns=["deploy"],
        environment_pattern="production",
    )
    client_ctor_mock.assert_called_once_with(config=config)

    collect_kwargs = collect_mock.call_args.kwargs
    assert collect_kwargs["client"] is client
    assert collect_kwargs["config"] is config
    assert (collect_kwargs["until"] - collect_kwargs["since"]).days == 30

    report_kwargs = report_mock.call_args.kwargs
    assert report_kwargs["repo_name"] == "acme/api"
    assert report_kwargs["dora"] is metrics.dora
    assert report_kwargs["health"] is metrics.health

    output = capsys.readouterr().out
    assert "Fetching the last 30 days of activity for 'acme/api'..." in output
    assert "REPORT" in output


def test_orchestrate_metrics_generation_configuration_error_returns_config_exit_code():
    """Verify invalid configuration returns the configuration exit code."""
    with patch("delivery_metrics.main.parse_args", return_value=_args()), patch(
        "delivery_metrics.main.load_config",
        side_effect=ConfigurationError("Invalid value for 'days'"),
    ):
        exit_code = orchestrate_metrics_generation()

    assert exit_code == 2


def test_orchestrate_metrics_generation_missing_token_returns_auth_error():
    """Verify a missing token returns the authentication exit code."""
    with patch("delivery_metrics.main.parse_args", return_value=_args()), patch(
        "delivery_metrics.main.load_config",
        side_effect=AuthenticationError("Missing required GitHub token."),
    ):
        exit_code = orchestrate_metrics_generation()

    assert exit_code == 3


def test_orchestrate_metrics_generation_api_error_returns_api_exit_code():
    """Verify GitHub API failures return the API error exit code."""
    with patch("delivery_metrics.main.parse_args", return_value=_args()), patch(
        "delivery_metrics.main.load_config", return_value=_config()
    ), patch("delivery_metrics.main.GitHubClient", return_value=Mock()), patch(
        "delivery_metrics.main.collect_repository_metrics",
        side_effect=ApiError("GitHub API request failed"),
    ):
        exit_code = orchestrate_metrics_generation()

    assert exit_code == 4


def test_orchestrate_metrics_generation_data_validation_error_returns_exit_code():
    """Verify malformed API data returns the data validation exit code."""
    with patch("delivery_metrics.main.parse_args", return_value=_args()), patch(
        "delivery_metrics.main.load_config", return_value=_config()
    ), patch("delivery_metrics.main.GitHubClient", return_value=Mock()), patch(
        "delivery_metrics.main.collect_repository_metrics",
        side_effect=DataValidationError("missing created_at"),
    ):
        exit_code = orchestrate_metrics_generation()

    assert exit_code == 5


def test_orchestrate_metrics_generation_unexpected_error_returns_generic_exit_code():
    """Verify unexpected exceptions are mapped to the generic non-zero exit code."""
    with patch("delivery_metrics.main.parse_args", side_effect=RuntimeError("boom")):
        exit_code = orchestrate_metrics_generation()

    assert exit_code == 1
