"""Variety, load and principle-coverage statistics over a plan's generated drills."""
from __future__ import annotations

from collections import Counter

from periodizer.models.schemas import (
    DrillRepeat,
    Intensity,
    PhaseType,
    PlanAnalytics,
    PrincipleCoverage,
    TeamPlan,
)

TOP_REPEATS = 5


def uniqueness_label(ratio: float) -> str:
    if ratio >= 0.85:
        return "Excellent"
    if ratio >= 0.7:
        return "Good"
    if ratio >= 0.55:
        return "Moderate"
    return "Needs Variety"


def evenness_label(evenness: float) -> str:
    if evenness >= 0.75:
        return "Balanced"
    if evenness >= 0.5:
        return "Slight Skew"
    return "Skewed"


def _pct(count: int, total: int) -> float:
    return round(count / (total or 1) * 100, 1)


def compute_plan_analytics(plan: TeamPlan) -> PlanAnalytics:
    """Aggregate statistics; sessions without drills contribute phases but no drills."""

    drill_counts: Counter[str] = Counter()
    drill_names: dict[str, str] = {}
    load_counts: Counter[str] = Counter({i.value: 0 for i in Intensity})
    phase_counts: Counter[str] = Counter({p.value: 0 for p in PhaseType})
    principle_counts: Counter[str] = Counter()
    intensity_counts: Counter[str] = Counter({i.value: 0 for i in Intensity})
    total_duration = 0
    sessions_with_drills = 0

    for session in plan.sessions:
        if session.drills_generated:
            sessions_with_drills += 1
        if session.computed_intensity is not None:
            intensity_counts[session.computed_intensity.label.value] += 1
        for phase in session.phases:
            phase_counts[phase.phase_type.value] += 1
            total_duration += phase.duration
            principle_counts.update(phase.principles_applied)
            for drill in phase.drills or []:
                drill_counts[drill.id] += 1
                drill_names.setdefault(drill.id, drill.name)
                load_counts[drill.load.value] += 1

    total_drills = sum(drill_counts.values())
    unique = len(drill_counts)
    ratio = unique / total_drills if total_drills else 0.0

    repeats = [
        DrillRepeat(id=drill_id, name=drill_names[drill_id], count=count)
        for drill_id, count in drill_counts.most_common()
        if count > 1
    ][:TOP_REPEATS]

    non_zero = [count for count in phase_counts.values() if count > 0]
    evenness = min(non_zero) / max(non_zero) if non_zero else 0.0

    focus = list(dict.fromkeys(plan.focus_principles.names()))
    focus_mentions = sum(principle_counts[name] for name in focus)
    coverage = [
        PrincipleCoverage(
            name=name,
            count=principle_counts[name],
            pct=_pct(principle_counts[name], focus_mentions),
        )
        for name in focus
    ]

    return PlanAnalytics(
        sessions=len(plan.sessions),
        sessions_with_drills=sessions_with_drills,
        drills=total_drills,
        total_duration_minutes=total_duration,
        unique_drills=unique,
        uniqueness_ratio=round(ratio, 3),
        uniqueness_pct=round(ratio * 100, 1),
        uniqueness_label=uniqueness_label(ratio),
        top_repeats=repeats,
        load_distribution=dict(load_counts),
        load_distribution_pct={k: _pct(v, total_drills) for k, v in load_counts.items()},
        phase_type_frequency=dict(phase_counts),
        phase_evenness=round(evenness, 2),
        phase_evenness_label=evenness_label(evenness),
        principle_coverage=coverage,
        uncovered_principles=[c.name for c in coverage if c.count == 0],
        intensity_session_counts=dict(intensity_counts),
    )
