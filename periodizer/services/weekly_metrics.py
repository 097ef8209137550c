"""Weekly load, monotony and strain (Foster-style) over a plan timeline."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable

from periodizer.models.load_taxonomy import load_score
from periodizer.models.schemas import FlagLevel, TimelineDay, WeeklyMetric, WeeklyMetricDay

MONOTONY_HIGH = 2.0
MONOTONY_MODERATE = 1.5
STRAIN_HIGH = 160.0
STRAIN_MODERATE = 120.0
MIN_STANDARD_DEVIATION = 0.0001


@dataclass(frozen=True)
class MetricThresholds:
    monotony_high: float = MONOTONY_HIGH
    monotony_moderate: float = MONOTONY_MODERATE
    strain_high: float = STRAIN_HIGH
    strain_moderate: float = STRAIN_MODERATE


def _flag(value: float, high: float, moderate: float) -> FlagLevel:
    if value > high:
        return FlagLevel.HIGH
    if value > moderate:
        return FlagLevel.MODERATE
    return FlagLevel.OK


def compute_weekly_metrics(
    timeline: Iterable[TimelineDay],
    thresholds: MetricThresholds | None = None,
) -> list[WeeklyMetric]:
    """Return one metric per week index present in the timeline.

    Monotony is mean / population SD (SD floored to avoid division by zero) and
    strain is weekly total x monotony. Flags use the unrounded values.
    """
    thresholds = thresholds or MetricThresholds()

    weeks: dict[int, list[WeeklyMetricDay]] = {}
    for day in timeline:
        weeks.setdefault(day.week_index, []).append(
            WeeklyMetricDay(date=day.date, load_class=day.load_class, score=load_score(day.load_class))
        )

    metrics: list[WeeklyMetric] = []
    for week_index in sorted(weeks):
        days = weeks[week_index]
        scores = [d.score for d in days]
        total = sum(scores)
        mean = total / len(scores)
        variance = sum((s - mean) ** 2 for s in scores) / len(scores)
        sd = max(math.sqrt(variance), MIN_STANDARD_DEVIATION)
        monotony = mean / sd
        strain = total * monotony
        metrics.append(
            WeeklyMetric(
                week_index=week_index,
                days=days,
                total_load=total,
                mean=mean,
                standard_deviation=sd,
                monotony=round(monotony, 2),
                strain=round(strain, 2),
                flag_monotony=_flag(monotony, thresholds.monotony_high, thresholds.monotony_moderate),
                flag_strain=_flag(strain, thresholds.strain_high, thresholds.strain_moderate),
            )
        )
    return metrics
