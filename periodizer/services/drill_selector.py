"""Weighted-stochastic drill allocation for session phases.

Selection is not a pure function: every pick is written to a
``PlanUsageState`` so later sessions of the same plan are scored against what
has already been used (recent window, per-plan frequency, principle coverage).
The state object is passed explicitly, so plans generated side by side in one
process never see each other's history.
"""
from __future__ import annotations

import datetime as dt
import logging
import math
import random
import re
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from periodizer.models.drill_library import DrillLibrary
from periodizer.models.load_taxonomy import DRILL_LOAD_SCORES, LoadClass
from periodizer.models.schemas import (
    ComputedIntensity,
    DrillInstance,
    DrillSource,
    DrillTemplate,
    FocusPrinciples,
    Intensity,
    Phase,
    PhaseType,
    PrincipleCount,
    Session,
    Variability,
)

logger = logging.getLogger(__name__)

# Budget
SESSION_DRILL_CAP: dict[LoadClass, int] = {LoadClass.HIGH: 6, LoadClass.MEDIUM: 5}
DEFAULT_SESSION_DRILL_CAP = 4
MAX_CORE_PHASE_DRILLS = 2
ATTACKING_WEIGHT = 0.4
DEFENDING_WEIGHT = 0.35
TRANSITION_WEIGHT = 0.6

# Scoring
WORKLOAD_MISMATCH_PENALTY = 0.18
UNCOVERED_PRINCIPLE_BOOST = 0.35
LOW_COVERAGE_PRINCIPLE_BOOST = 0.22
COVERED_PRINCIPLE_BOOST = 0.12
LOW_COVERAGE_MAX_MENTIONS = 1
ROTATION_TAG_BOOST = 0.18
RECENT_USAGE_PENALTY = 0.25
FREQUENCY_PENALTY_STEP = 0.15
FREQUENCY_PENALTY_CAP = 0.45
GLOBAL_PENALTY_STEP = 0.07
GLOBAL_PENALTY_CAP = 0.42
WITHIN_SESSION_PENALTY = 0.5
RECENCY_MAX_BONUS = 0.1
RECENCY_HORIZON_DAYS = 730

# Sampling
RECENT_WINDOW_SESSIONS = 3
MIN_POOL_SIZE = 12
POOL_BUDGET_MULTIPLIER = 3
WEIGHT_EPSILON = 0.01
MIN_WEIGHT = 1e-6
VARIABILITY_VALUES: dict[Variability, float] = {
    Variability.LOW: 0.35,
    Variability.MEDIUM: 0.6,
    Variability.HIGH: 0.85,
}

ROTATION_TAGS = (
    "pressing",
    "transition",
    "passing",
    "receiving",
    "mobility",
    "recovery",
    "finishing",
    "possession",
)

MANDATORY_PHASE_TYPES = (PhaseType.WARM, PhaseType.TECHNICAL, PhaseType.TACTICAL)
DRILL_WARNING = "Some phases missing drills due to limited library"
EQUIPMENT_ROLLUP_LIMIT = 6

# Which session principles a phase of each type showcases, and how many.
_PHASE_PRINCIPLE_FILTERS: dict[PhaseType, tuple[re.Pattern[str], int]] = {
    PhaseType.WARM: (re.compile(r"Mobility|Support|Transition to Attack|Transition to Defend", re.I), 2),
    PhaseType.TECHNICAL: (re.compile(r"Support|Width|Penetration|Mobility", re.I), 3),
    PhaseType.TACTICAL: (re.compile(r"Pressure|Cover|Compactness|Penetration|Transition", re.I), 3),
    PhaseType.TRANSITION: (re.compile(r"Pressure|Cover|Compactness|Penetration|Transition", re.I), 3),
    PhaseType.COOL: (re.compile(r"Control|Compactness|Support", re.I), 2),
}


@dataclass
class PlanUsageState:
    """Running drill-usage and principle-coverage counters for one plan.

    ``global_counts`` covers every pick in the plan including earlier phases of
    the session being generated; ``frequency``, ``recent_sessions`` and
    ``principle_counts`` only change once a session is complete.
    """

    focus_principles: list[str] = field(default_factory=list)
    global_counts: Counter = field(default_factory=Counter)
    frequency: Counter = field(default_factory=Counter)
    recent_sessions: deque = field(default_factory=lambda: deque(maxlen=RECENT_WINDOW_SESSIONS))
    principle_counts: dict[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name in self.focus_principles:
            self.principle_counts.setdefault(name, 0)

    @classmethod
    def from_plan(
        cls,
        sessions: Sequence[Session],
        session_index: int,
        focus_principles: Iterable[str],
    ) -> "PlanUsageState":
        """Rebuild the history visible to ``sessions[session_index]``.

        Earlier generated sessions feed the frequency, recent-window and
        coverage counters; every other generated session (including later ones
        when a session is regenerated) feeds the plan-wide counts.
        """
        state = cls(focus_principles=list(focus_principles))
        for index, session in enumerate(sessions):
            if index == session_index or not session.drills_generated:
                continue
            ids = _session_drill_ids(session)
            for drill_id in ids:
                state.record_pick(drill_id)
            if index < session_index:
                state._record_history(session, ids)
        return state

    @property
    def recent_ids(self) -> set[str]:
        return set().union(*self.recent_sessions) if self.recent_sessions else set()

    def mentions(self, principle: str) -> int:
        return self.principle_counts.get(principle, 0)

    def record_pick(self, drill_id: str) -> None:
        self.global_counts[drill_id] += 1

    def release_pick(self, drill_id: str) -> None:
        """Undo ``record_pick`` for a drill that was replaced before the session completed."""
        if self.global_counts[drill_id] > 0:
            self.global_counts[drill_id] -= 1

    def record_session(self, session: Session) -> None:
        """Fold a completed session into the frequency, recency and coverage counters."""
        self._record_history(session, _session_drill_ids(session))

    def _record_history(self, session: Session, ids: list[str]) -> None:
        self.frequency.update(ids)
        self.recent_sessions.append(set(ids))
        for phase in session.phases:
            for principle in phase.principles_applied:
                if principle in self.principle_counts:
                    self.principle_counts[principle] += 1

    def coverage_snapshot(self) -> list[PrincipleCount]:
        return [PrincipleCount(name=name, count=self.mentions(name)) for name in self.focus_principles]


def _session_drill_ids(session: Session) -> list[str]:
    return [drill.id for phase in session.phases for drill in (phase.drills or []) if drill.id]


def session_drill_cap(load: LoadClass) -> int:
    return SESSION_DRILL_CAP.get(LoadClass(load), DEFAULT_SESSION_DRILL_CAP)


def variability_value(variability: Variability | str | float) -> float:
    if isinstance(variability, (int, float)):
        return float(variability)
    return VARIABILITY_VALUES.get(Variability(variability), VARIABILITY_VALUES[Variability.MEDIUM])


def rotation_tag(session_index: int) -> str:
    return ROTATION_TAGS[session_index % len(ROTATION_TAGS)]


def target_load(phase: Phase, session_load: LoadClass) -> Intensity:
    """Workload a phase's drills should carry."""

    if phase.phase_type in (PhaseType.WARM, PhaseType.COOL):
        return Intensity.LOW
    if session_load == LoadClass.HIGH:
        return Intensity.MEDIUM if phase.phase_type == PhaseType.TECHNICAL else Intensity.HIGH
    if session_load == LoadClass.MEDIUM:
        return Intensity.MEDIUM
    return Intensity.LOW


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def core_phase_weight(phase: Phase, focus: FocusPrinciples) -> float:
    if phase.phase_type == PhaseType.TECHNICAL:
        return 1 + len(focus.attacking) * ATTACKING_WEIGHT
    if phase.phase_type == PhaseType.TACTICAL:
        return 1 + len(focus.defending) * DEFENDING_WEIGHT
    if phase.phase_type == PhaseType.TRANSITION:
        return 1 + len(focus.transition) * TRANSITION_WEIGHT
    return 1.0


def allocate_core_drills(
    core_phases: Sequence[Phase],
    remaining: int,
    focus: FocusPrinciples,
    cap: int = MAX_CORE_PHASE_DRILLS,
) -> list[int]:
    """Split the remaining session budget across core phases.

    Proportional to phase weight, corrected greedily to the exact total, then
    capped per phase with overflow moved to the least-allocated phase that is
    still under the cap (or dropped when none is).
    """
    if not core_phases or remaining <= 0:
        return [0] * len(core_phases)

    weights = [core_phase_weight(p, focus) for p in core_phases]
    weight_sum = sum(weights) or 1.0
    allocation = [max(0, _round_half_up(w / weight_sum * remaining)) for w in weights]

    allocated = sum(allocation)
    while allocated > remaining:
        over = next(i for i, count in enumerate(allocation) if count > 0)
        allocation[over] -= 1
        allocated -= 1
    # Prefer high-intensity phases when topping up; stable for ties.
    top_up_order = sorted(
        range(len(core_phases)),
        key=lambda i: 0 if core_phases[i].target_intensity == Intensity.HIGH else 1,
    )
    while allocated < remaining:
        allocation[top_up_order[0]] += 1
        allocated += 1

    overflow = 0
    for i, count in enumerate(allocation):
        if count > cap:
            overflow += count - cap
            allocation[i] = cap
    while overflow > 0:
        open_phases = [i for i, count in enumerate(allocation) if count < cap]
        if not open_phases:
            break
        least = min(open_phases, key=lambda i: allocation[i])
        allocation[least] += 1
        overflow -= 1
    return allocation


def recency_bonus(last_reviewed: dt.datetime | None, reference: dt.date) -> float:
    """Small bonus for recently reviewed templates, fading out over two years."""

    if last_reviewed is None:
        return 0.0
    age_days = (reference - last_reviewed.date()).days
    return RECENCY_MAX_BONUS * max(0.0, min(1.0, 1 - age_days / RECENCY_HORIZON_DAYS))


def template_to_instance(template: DrillTemplate, phase_name: str) -> DrillInstance:
    category = template.category.lower()
    if "tactical" in category:
        staff = "Tactical Coach"
    elif "recovery" in category:
        staff = "Physio"
    else:
        staff = "Coach"
    return DrillInstance(
        id=template.id,
        name=template.name,
        duration=_round_half_up((template.duration_min + template.duration_max) / 2),
        load=template.workload,
        staff=staff,
        phase=phase_name,
        category=template.category,
        tags=list(template.tags),
        objective=template.objective_primary,
        secondary_objectives=list(template.objectives_secondary),
        equipment=list(template.equipment),
        coaching_points=list(template.coaching_points),
        constraints=list(template.constraints),
        progressions=list(template.progressions),
        regressions=list(template.regressions),
        player_arrangement=template.players,
        space_dimensions=template.space,
        source=DrillSource(name=template.source_name, quality_weight=template.quality_weight),
    )


def enriched_instructions(drill: DrillInstance) -> str:
    """Human-readable instruction block; fixed order, empty parts left out."""

    parts = [
        ("Objective", drill.objective),
        ("Secondary", "; ".join(drill.secondary_objectives)),
        ("Players", drill.player_arrangement),
        ("Space", drill.space_dimensions),
        ("Equipment", ", ".join(drill.equipment)),
        ("Coaching Points", "; ".join(drill.coaching_points)),
        ("Constraints", "; ".join(drill.constraints)),
        ("Progressions", "; ".join(drill.progressions[:2])),
        ("Regressions", "; ".join(drill.regressions[:2])),
    ]
    return "\n".join(f"{label}: {text}" for label, text in parts if text)


def _phase_rationale(phase: Phase, session: Session) -> str:
    load = session.overall_load.value
    principles = session.principles_applied
    if phase.phase_type == PhaseType.WARM:
        lead = f". {principles[0]}" if principles else ""
        return f"Progressive neuromuscular activation aligned with {load} load{lead}"
    if phase.phase_type == PhaseType.TECHNICAL:
        return f"Technical quality & execution under appropriate tempo for a {load} day."
    if phase.phase_type == PhaseType.TACTICAL:
        lead = f" & principles: {'; '.join(principles[:2])}" if principles else ""
        return f"Applied tactical theme reflecting periodization{lead}"
    if phase.phase_type == PhaseType.COOL:
        return "Down-regulation and recovery facilitation to consolidate adaptations."
    return "Phase emphasis aligned with session objectives."


def _phase_principles(phase: Phase, session: Session) -> list[str]:
    pattern, limit = _PHASE_PRINCIPLE_FILTERS[phase.phase_type]
    return [p for p in session.principles_applied if pattern.search(p)][:limit]


def computed_intensity(drills: Sequence[DrillInstance]) -> ComputedIntensity | None:
    if not drills:
        return None
    average = sum(DRILL_LOAD_SCORES.get(d.load.value.lower(), 2) for d in drills) / len(drills)
    if average < 1.6:
        label = Intensity.LOW
    elif average < 2.4:
        label = Intensity.MEDIUM
    else:
        label = Intensity.HIGH
    return ComputedIntensity(average_score=round(average, 2), label=label)


def finalize_session(
    session: Session,
    drills_by_phase: dict[int, list[DrillInstance]],
    usage: PlanUsageState,
    generated_at: dt.datetime | None = None,
) -> Session:
    """Attach drills to the session's phases and derive the session-level fields."""

    for index, phase in enumerate(session.phases):
        drills = drills_by_phase.get(index, [])
        for drill in drills:
            drill.phase = phase.name
            drill.enriched_instructions = enriched_instructions(drill)
        phase.drills = drills
        phase.duration = sum(d.duration for d in drills)
        phase.principles_applied = _phase_principles(phase, session)
        phase.rationale = _phase_rationale(phase, session)
        phase.equipment = list(dict.fromkeys(e for d in drills for e in d.equipment))[:EQUIPMENT_ROLLUP_LIMIT]

    all_drills = [d for phase in session.phases for d in (phase.drills or [])]
    session.computed_intensity = computed_intensity(all_drills)

    usage.record_session(session)
    session.principle_coverage_snapshot = usage.coverage_snapshot()

    missing = [
        phase.name
        for phase in session.phases
        if phase.phase_type in MANDATORY_PHASE_TYPES and not phase.drills
    ]
    session.drill_warning = DRILL_WARNING if missing else None
    if missing:
        logger.warning("Session %s has empty phases: %s", session.date, ", ".join(missing))

    session.drills_generated = True
    session.drill_generation_at = generated_at or dt.datetime.now(dt.timezone.utc)
    return session


@dataclass
class ScoredDrill:
    score: float
    template: DrillTemplate


@dataclass
class PhaseRequest:
    """Everything the scorer needs to know about one phase of one session."""

    phase: Phase
    target: Intensity
    budget: int
    rotation_tag: str
    reference_date: dt.date


@dataclass
class SessionSelection:
    """Templates chosen per phase index, plus the drill budget each phase was given."""

    picks: dict[int, list[DrillTemplate]]
    budgets: dict[int, int]

    def instances(self, session: Session) -> dict[int, list[DrillInstance]]:
        return {
            index: [template_to_instance(t, session.phases[index].name) for t in templates]
            for index, templates in self.picks.items()
        }


class DrillSelector:
    """Allocates a drill budget across a session's phases and samples drills."""

    def __init__(
        self,
        library: DrillLibrary,
        rng: random.Random | None = None,
        variability: Variability | str | float = Variability.MEDIUM,
    ) -> None:
        self.library = library
        self.rng = rng or random.Random()
        self.variability = variability_value(variability)

    @property
    def exponent(self) -> float:
        # Lower variability gives a larger exponent and a peakier distribution.
        return 1 - self.variability + 0.4

    def score_candidates(
        self,
        candidates: Iterable[DrillTemplate],
        request: PhaseRequest,
        focus_names: Sequence[str],
        usage: PlanUsageState,
        picked: set[str],
    ) -> list[ScoredDrill]:
        recent = usage.recent_ids
        scored: list[ScoredDrill] = []
        for template in candidates:
            score = template.quality_weight
            if template.workload != request.target:
                score -= WORKLOAD_MISMATCH_PENALTY
            score += recency_bonus(template.last_reviewed, request.reference_date)

            text_fields = [
                template.objective_primary.lower(),
                *(s.lower() for s in template.objectives_secondary),
                template.category.lower(),
            ]
            for principle in focus_names:
                token = principle.lower().split(" ")[0]
                if not any(token in text for text in text_fields):
                    continue
                mentions = usage.mentions(principle)
                if mentions == 0:
                    score += UNCOVERED_PRINCIPLE_BOOST
                elif mentions <= LOW_COVERAGE_MAX_MENTIONS:
                    score += LOW_COVERAGE_PRINCIPLE_BOOST
                else:
                    score += COVERED_PRINCIPLE_BOOST
            if request.rotation_tag in template.tags or request.rotation_tag == template.category.lower():
                score += ROTATION_TAG_BOOST

            if template.id in recent:
                score -= RECENT_USAGE_PENALTY
            score -= min(FREQUENCY_PENALTY_STEP * usage.frequency[template.id], FREQUENCY_PENALTY_CAP)
            score -= min(GLOBAL_PENALTY_STEP * usage.global_counts[template.id], GLOBAL_PENALTY_CAP)
            if template.id in picked:
                score -= WITHIN_SESSION_PENALTY
            scored.append(ScoredDrill(score=score, template=template))

        scored.sort(key=lambda item: item.score, reverse=True)
        return scored

    def pick_for_phase(
        self,
        request: PhaseRequest,
        focus_names: Sequence[str],
        usage: PlanUsageState,
        picked: set[str],
    ) -> list[DrillTemplate]:
        """Weighted sampling without replacement from the top of the ranking."""

        if request.budget <= 0:
            return []
        candidates = self.library.candidates(request.phase.phase_type, request.target)
        scored = self.score_candidates(candidates, request, focus_names, usage, picked)
        if not scored:
            return []

        pool = scored[: max(request.budget * POOL_BUDGET_MULTIPLIER, MIN_POOL_SIZE)]
        min_score = min(item.score for item in pool)
        weights = [
            max(MIN_WEIGHT, ((item.score - min_score) + WEIGHT_EPSILON) ** self.exponent)
            for item in pool
        ]

        chosen: list[DrillTemplate] = []
        while len(chosen) < request.budget and any(weights):
            index = self.rng.choices(range(len(pool)), weights=weights)[0]
            weights[index] = 0.0
            template = pool[index].template
            if template.id in picked:
                continue
            chosen.append(template)
            picked.add(template.id)
            usage.record_pick(template.id)

        if not chosen:
            fallback = next((s.template for s in scored if s.template.id not in picked), scored[0].template)
            chosen.append(fallback)
            picked.add(fallback.id)
            usage.record_pick(fallback.id)
        return chosen

    def select(
        self,
        session: Session,
        session_index: int,
        focus: FocusPrinciples,
        usage: PlanUsageState,
    ) -> SessionSelection:
        """Choose templates for every phase of a session, keyed by phase index.

        Warm and cool phases get one drill each first; whatever remains of the
        load-based cap is shared across the core phases.
        """
        focus_names = focus.names()
        tag = rotation_tag(session_index)
        picked: set[str] = set()
        picks: dict[int, list[DrillTemplate]] = {}
        budgets: dict[int, int] = {}

        def request(phase: Phase, budget: int) -> PhaseRequest:
            return PhaseRequest(
                phase=phase,
                target=target_load(phase, session.overall_load),
                budget=budget,
                rotation_tag=tag,
                reference_date=session.date,
            )

        remaining = session_drill_cap(session.overall_load)
        core_indexes: list[int] = []
        for index, phase in enumerate(session.phases):
            if phase.phase_type in (PhaseType.WARM, PhaseType.COOL):
                budgets[index] = 1
                picks[index] = self.pick_for_phase(request(phase, 1), focus_names, usage, picked)
                # Charged even when the library has nothing for this phase.
                remaining -= budgets[index]
            else:
                core_indexes.append(index)

        core_phases = [session.phases[i] for i in core_indexes]
        allocation = allocate_core_drills(core_phases, remaining, focus)
        for index, budget in zip(core_indexes, allocation):
            budgets[index] = budget
            picks[index] = self.pick_for_phase(
                request(session.phases[index], budget), focus_names, usage, picked
            )

        logger.debug(
            "Selected %d drills for session %d (%s, rotation=%s)",
            sum(len(p) for p in picks.values()),
            session_index,
            session.overall_load.value,
            tag,
        )
        return SessionSelection(picks=picks, budgets=budgets)

    def populate(
        self,
        session: Session,
        session_index: int,
        focus: FocusPrinciples,
        usage: PlanUsageState,
    ) -> Session:
        """Select curated drills and finalise the session in place."""

        selection = self.select(session, session_index, focus, usage)
        return finalize_session(session, selection.instances(session), usage)
