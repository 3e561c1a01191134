"""Threshold-based health status for headline metrics."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional, Tuple

GOOD = "good"
WARNING = "warning"
CRITICAL = "critical"


@dataclass(frozen=True)
class Threshold:
    """Values at or below ``good`` are good; at or below ``warning`` are warnings."""

    good: float
    warning: float


DEFAULT_HEALTH_THRESHOLDS: Dict[str, Threshold] = {
    "lead_time": Threshold(good=24, warning=168),
    "change_failure_rate": Threshold(good=5, warning=15),
    "cycle_time": Threshold(good=48, warning=120),
    "time_to_first_review": Threshold(good=4, warning=24),
}


def evaluate_metric(value: Optional[float], threshold: Threshold) -> Optional[str]:
    """Evaluate a single value; ``None`` values are not evaluated."""
    if value is None:
        return None
    if value <= threshold.good:
        return GOOD
    if value <= threshold.warning:
        return WARNING
    return CRITICAL


def select_worst_status(statuses: Iterable[Optional[str]]) -> str:
    """Return the worst status (critical > warning > good), ignoring ``None``.

    When nothing was evaluated the result is ``good``.
    """
    present = {status for status in statuses if status is not None}
    if CRITICAL in present:
        return CRITICAL
    if WARNING in present:
        return WARNING
    return GOOD


def evaluate_overall_health(metrics: Mapping[str, Tuple[Optional[float], Threshold]]) -> str:
    """Evaluate several ``name -> (value, threshold)`` pairs into one status."""
    return select_worst_status(
        evaluate_metric(value, threshold) for value, threshold in metrics.values()
    )
