"""Tests for threshold-based health evaluation."""

import sys
from pathlib import Path

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from delivery_metrics.health import (
    CRITICAL,
    DEFAULT_HEALTH_THRESHOLDS,
    GOOD,
    WARNING,
    Threshold,
    evaluate_metric,
    evaluate_overall_health,
    select_worst_status,
)


def test_evaluate_metric_boundaries_are_inclusive():
    """Verify values equal to a threshold fall into the better bucket."""
    threshold = Threshold(good=24, warning=168)

    assert evaluate_metric(24, threshold) == GOOD
    assert evaluate_metric(24.1, threshold) == WARNING
    assert evaluate_metric(168, threshold) == WARNING
    assert evaluate_metric(168.1, threshold) == CRITICAL


def test_evaluate_metric_missing_value_is_not_evaluated():
    """Verify None values produce no status."""
    assert evaluate_metric(None, Threshold(good=1, warning=2)) is None


def test_select_worst_status_prefers_critical_then_warning():
    """Verify the worst present status wins and None is ignored."""
    assert select_worst_status([GOOD, None, WARNING]) == WARNING
    assert select_worst_status([WARNING, CRITICAL, GOOD]) == CRITICAL
    assert select_worst_status([None]) == GOOD
    assert select_worst_status([]) == GOOD


def test_evaluate_overall_health_with_default_thresholds():
    """Verify the overall status combines several metrics."""
    status = evaluate_overall_health(
        {
            "lead_time": (12.0, DEFAULT_HEALTH_THRESHOLDS["lead_time"]),
            "change_failure_rate": (20.0, DEFAULT_HEALTH_THRESHOLDS["change_failure_rate"]),
            "cycle_time": (None, DEFAULT_HEALTH_THRESHOLDS["cycle_time"]),
        }
    )

    assert status == CRITICAL
