"""Trend analysis over case metric history and month-over-month KPI changes."""

import math
from typing import Optional, Sequence

from src.epicq.epicq_pydantic_models import MetricSnapshot, TrendSummary


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def calculate_trend_from_history(history: Sequence[MetricSnapshot]) -> TrendSummary:
    """
    Estimate progress velocity (completion points per day) and its trend.

    The trend compares the average velocity of the second half of the
    history against the first half; confidence grows with the number of
    snapshots and shrinks with the variability of the velocities.

    Args:
        history: Snapshots ordered by ``recorded_date``

    Returns:
        TrendSummary with the average velocity rounded to two decimals
    """
    if len(history) < 2:
        return TrendSummary(avg_velocity=0.0, trend="stable", confidence="low", data_points=len(history))

    velocities = []
    for prev, curr in zip(history, history[1:]):
        days = (curr.recorded_date - prev.recorded_date).days
        if days > 0:
            progress = (curr.completion_percentage or 0) - (prev.completion_percentage or 0)
            velocities.append(progress / days)

    avg_velocity = _mean(velocities)

    mid_point = len(history) // 2
    first_avg = _mean(velocities[:mid_point])
    second_avg = _mean(velocities[mid_point:])

    trend = "stable"
    if second_avg > first_avg * 1.1:
        trend = "improving"
    elif second_avg < first_avg * 0.9:
        trend = "declining"

    variance = (
        sum((v - avg_velocity) ** 2 for v in velocities) / len(velocities)
        if len(velocities) > 1
        else 0.0
    )
    std_dev = math.sqrt(variance)
    variation = std_dev / abs(avg_velocity) if avg_velocity != 0 else 1.0

    confidence = "low"
    if len(history) >= 30 and variation < 0.3:
        confidence = "high"
    elif len(history) >= 10 and variation < 0.5:
        confidence = "medium"

    return TrendSummary(
        avg_velocity=round(avg_velocity, 2),
        trend=trend,
        confidence=confidence,
        data_points=len(history),
    )


def percentage_change(current: float, previous: float) -> int:
    """Month-over-month change in percent, half-up rounded; 100 when growing from zero."""
    if previous == 0:
        return 100 if current > 0 else 0
    return math.floor((current - previous) / previous * 100 + 0.5)


def round_half_up(value: Optional[float]) -> int:
    return math.floor(value + 0.5) if value is not None else 0
