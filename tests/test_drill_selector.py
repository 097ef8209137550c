"""Tests for drill budget allocation, scoring and weighted selection."""
from __future__ import annotations

import datetime as dt
import random
import statistics
from collections import Counter

import pytest

from periodizer.models.drill_library import DrillLibrary
from periodizer.models.load_taxonomy import LoadClass
from periodizer.models.schemas import (
    DrillInstance,
    DrillTemplate,
    FocusPrinciples,
    Intensity,
    Phase,
    PhaseType,
    Session,
)
from periodizer.services.drill_selector import (
    DRILL_WARNING,
    DrillSelector,
    PhaseRequest,
    PlanUsageState,
    allocate_core_drills,
    enriched_instructions,
    finalize_session,
    recency_bonus,
    session_drill_cap,
    target_load,
    template_to_instance,
)
from periodizer.services.periodization import apply_load
from periodizer.services.session_skeleton import derive_session_skeleton


def phase(phase_type: PhaseType, intensity: Intensity = Intensity.MEDIUM, name: str | None = None) -> Phase:
    return Phase(
        name=name or phase_type.value.title(),
        focus="",
        target_intensity=intensity,
        phase_type=phase_type,
    )


def template(template_id: str, phase_type: PhaseType, **overrides) -> DrillTemplate:
    values = dict(
        id=template_id,
        name=template_id.replace("_", " ").title(),
        phase=phase_type,
        workload=Intensity.MEDIUM,
        objective_primary="Generic drill",
        duration_min=8,
        duration_max=12,
        quality_weight=0.7,
    )
    values.update(overrides)
    return DrillTemplate(**values)


def uniform_library(per_phase: int = 15) -> DrillLibrary:
    return DrillLibrary(
        [template(f"{p.value}_{i}", p) for p in PhaseType for i in range(per_phase)]
    )


def medium_session(day_offset: int = 0) -> Session:
    return Session(
        name="Medium Load Training Day",
        date=dt.date(2025, 3, 3) + dt.timedelta(days=day_offset),
        overall_load=LoadClass.MEDIUM,
        phases=[
            phase(PhaseType.WARM, Intensity.LOW, "Warm Up"),
            phase(PhaseType.TECHNICAL, Intensity.LOW),
            phase(PhaseType.TACTICAL, Intensity.MEDIUM),
            phase(PhaseType.COOL, Intensity.LOW, "Cool Down"),
        ],
    )


class TestAllocation:
    def test_default_focus_weights(self):
        core = [
            phase(PhaseType.TECHNICAL, Intensity.MEDIUM),
            phase(PhaseType.TACTICAL, Intensity.HIGH),
            phase(PhaseType.TRANSITION, Intensity.HIGH),
        ]
        focus = FocusPrinciples(attacking=["a", "b"], defending=["c", "d"], transition=["e", "f"])

        assert allocate_core_drills(core, 4, focus) == [1, 1, 2]

    def test_top_up_prefers_high_intensity_phases(self):
        core = [
            phase(PhaseType.TECHNICAL, Intensity.MEDIUM),
            phase(PhaseType.TACTICAL, Intensity.HIGH),
            phase(PhaseType.TRANSITION, Intensity.HIGH),
        ]
        assert allocate_core_drills(core, 4, FocusPrinciples()) == [1, 2, 1]

    def test_over_allocation_removed_from_first_phase(self):
        core = [phase(PhaseType.TECHNICAL), phase(PhaseType.TACTICAL)]
        assert allocate_core_drills(core, 1, FocusPrinciples()) == [0, 1]

    def test_cap_moves_overflow_to_open_phase(self):
        core = [phase(PhaseType.TECHNICAL), phase(PhaseType.TACTICAL)]
        focus = FocusPrinciples(attacking=["a", "b", "c", "d"])

        assert allocate_core_drills(core, 5, focus) == [2, 2]

    def test_overflow_dropped_when_every_phase_is_capped(self):
        assert allocate_core_drills([phase(PhaseType.TECHNICAL)], 4, FocusPrinciples()) == [2]

    def test_nothing_to_allocate(self):
        assert allocate_core_drills([phase(PhaseType.TECHNICAL)], 0, FocusPrinciples()) == [0]
        assert allocate_core_drills([], 3, FocusPrinciples()) == []


class TestHelpers:
    @pytest.mark.parametrize(
        "load, cap",
        [
            (LoadClass.HIGH, 6),
            (LoadClass.MEDIUM, 5),
            (LoadClass.LOW, 4),
            (LoadClass.RECOVERY, 4),
            (LoadClass.OFF, 4),
            (LoadClass.MATCH, 4),
        ],
    )
    def test_session_cap(self, load, cap):
        assert session_drill_cap(load) == cap

    def test_target_load(self):
        assert target_load(phase(PhaseType.WARM), LoadClass.HIGH) == Intensity.LOW
        assert target_load(phase(PhaseType.TECHNICAL), LoadClass.HIGH) == Intensity.MEDIUM
        assert target_load(phase(PhaseType.TACTICAL), LoadClass.HIGH) == Intensity.HIGH
        assert target_load(phase(PhaseType.TACTICAL), LoadClass.MEDIUM) == Intensity.MEDIUM
        assert target_load(phase(PhaseType.TACTICAL), LoadClass.RECOVERY) == Intensity.LOW
        assert target_load(phase(PhaseType.TACTICAL), LoadClass.MATCH) == Intensity.LOW

    def test_recency_bonus_is_bounded(self):
        reference = dt.date(2025, 3, 3)
        assert recency_bonus(None, reference) == 0.0
        assert recency_bonus(dt.datetime(2025, 3, 3), reference) == pytest.approx(0.1)
        assert recency_bonus(dt.datetime(2024, 3, 3), reference) == pytest.approx(0.05, abs=0.001)
        assert recency_bonus(dt.datetime(2020, 1, 1), reference) == 0.0

    def test_template_copy_is_independent(self):
        source = template("tact_a", PhaseType.TACTICAL, category="Tactical", equipment=["Bibs"], duration_min=10, duration_max=15)

        first = template_to_instance(source, "Tactical")
        second = template_to_instance(source, "Tactical")
        first.equipment.append("Cones")

        assert second.equipment == ["Bibs"]
        assert first.duration == 13
        assert first.staff == "Tactical Coach"
        assert first.source.quality_weight == 0.7

    def test_enriched_instructions_skip_empty_parts(self):
        drill = DrillInstance(
            id="x",
            name="X",
            duration=10,
            load=Intensity.LOW,
            objective="Keep the ball",
            equipment=["Balls", "Cones"],
            progressions=["One touch", "Smaller area", "Add defender"],
        )

        assert enriched_instructions(drill) == (
            "Objective: Keep the ball\nEquipment: Balls, Cones\nProgressions: One touch; Smaller area"
        )


class TestSelection:
    @pytest.mark.parametrize("load", [LoadClass.HIGH, LoadClass.MEDIUM, LoadClass.LOW, LoadClass.RECOVERY])
    def test_budget_invariant(self, make_days, library, catalog, load):
        focus = catalog.resolve_focus()
        for seed in range(15):
            rng = random.Random(seed)
            day = make_days(1)[0]
            apply_load(day, load)
            session = derive_session_skeleton(day, rng, catalog)
            usage = PlanUsageState(focus_principles=focus.names())

            DrillSelector(library, rng).populate(session, seed, focus, usage)

            total = sum(len(p.drills) for p in session.phases)
            assert total <= session_drill_cap(load)
            for p in session.phases:
                if p.phase_type in (PhaseType.WARM, PhaseType.COOL):
                    assert len(p.drills) == 1
                else:
                    assert len(p.drills) <= 2
            ids = [d.id for p in session.phases for d in p.drills]
            assert len(ids) == len(set(ids))

    def test_fixture_session_is_populated(self, make_days, library, catalog, rng):
        day = make_days(1, fixture_indexes=(0,))[0]
        apply_load(day, LoadClass.MATCH)
        session = derive_session_skeleton(day, rng, catalog)
        focus = catalog.resolve_focus()

        DrillSelector(library, rng).populate(session, 0, focus, PlanUsageState(focus_principles=focus.names()))

        assert [len(p.drills) for p in session.phases] == [1, 2, 1]
        assert session.drill_warning is None

    def test_session_fields_after_population(self, library, catalog, rng):
        session = medium_session()
        focus = catalog.resolve_focus()
        usage = PlanUsageState(focus_principles=focus.names())

        DrillSelector(library, rng).populate(session, 0, focus, usage)

        assert session.drills_generated is True
        assert session.drill_generation_at is not None
        assert session.computed_intensity is not None
        assert [c.name for c in session.principle_coverage_snapshot] == focus.names()
        for p in session.phases:
            assert p.duration == sum(d.duration for d in p.drills)
            assert all(d.phase == p.name for d in p.drills)
            assert all(d.enriched_instructions for d in p.drills)
            assert len(p.equipment) <= 6
            assert p.rationale
        assert usage.frequency.total() == sum(len(p.drills) for p in session.phases)
        assert len(usage.recent_sessions) == 1

    def test_empty_library_phase_sets_warning(self):
        library = DrillLibrary([template(f"tech_{i}", PhaseType.TECHNICAL) for i in range(5)])
        session = medium_session()
        focus = FocusPrinciples()

        DrillSelector(library, random.Random(3)).populate(session, 0, focus, PlanUsageState())

        assert session.drill_warning == DRILL_WARNING
        assert session.phases[0].drills == []
        # The empty warm and cool phases still take their share of the cap.
        assert len(session.phases[1].drills) == 1
        assert session.drills_generated is True

    def test_empty_phases_keep_their_budget(self):
        library = DrillLibrary([template(f"tech_{i}", PhaseType.TECHNICAL) for i in range(5)])
        session = medium_session()

        selection = DrillSelector(library, random.Random(3)).select(session, 0, FocusPrinciples(), PlanUsageState())

        assert selection.budgets == {0: 1, 1: 1, 2: 2, 3: 1}
        assert sum(selection.budgets.values()) == session_drill_cap(LoadClass.MEDIUM)
        assert selection.picks[0] == [] and selection.picks[3] == []

    def test_seeded_selection_is_reproducible(self, library, catalog):
        focus = catalog.resolve_focus()

        def run(seed):
            session = medium_session()
            DrillSelector(library, random.Random(seed)).populate(
                session, 0, focus, PlanUsageState(focus_principles=focus.names())
            )
            return [d.id for p in session.phases for d in p.drills]

        assert run(11) == run(11)

    def test_recently_used_drills_are_penalised(self):
        library = uniform_library(4)
        selector = DrillSelector(library, random.Random(0))
        usage = PlanUsageState()
        usage.recent_sessions.append({"tactical_0"})
        usage.frequency["tactical_0"] += 1
        usage.global_counts["tactical_0"] += 1
        request = PhaseRequest(
            phase=phase(PhaseType.TACTICAL),
            target=Intensity.MEDIUM,
            budget=1,
            rotation_tag="pressing",
            reference_date=dt.date(2025, 3, 3),
        )
        scored = selector.score_candidates(library.for_phase(PhaseType.TACTICAL), request, [], usage, set())

        assert scored[-1].template.id == "tactical_0"
        assert scored[0].score - scored[-1].score == pytest.approx(0.25 + 0.15 + 0.07)


class TestAntiRepetition:
    def test_low_variability_reuses_less_than_uniform_random(self):
        library = uniform_library(15)
        warm_ids = [t.id for t in library.for_phase(PhaseType.WARM)]
        focus = FocusPrinciples()

        selector_reuse = 0
        baseline_reuse = 0
        selector_variance = []
        baseline_variance = []
        for seed in range(10):
            usage = PlanUsageState()
            selector = DrillSelector(library, random.Random(seed), variability="low")
            warm_picks = []
            for index in range(20):
                session = medium_session(index)
                selector.populate(session, index, focus, usage)
                warm_picks.append(session.phases[0].drills[0].id)

            baseline_rng = random.Random(seed + 1000)
            baseline_picks = [baseline_rng.choice(warm_ids) for _ in range(20)]

            selector_reuse += sum(a == b for a, b in zip(warm_picks, warm_picks[1:]))
            baseline_reuse += sum(a == b for a, b in zip(baseline_picks, baseline_picks[1:]))
            selector_variance.append(statistics.pvariance(list(Counter(warm_picks).values())))
            baseline_variance.append(statistics.pvariance(list(Counter(baseline_picks).values())))

        assert selector_reuse < baseline_reuse
        assert statistics.mean(selector_variance) < statistics.mean(baseline_variance)


class TestUsageState:
    def test_from_plan_rebuilds_history(self):
        sessions = []
        for index, ids in enumerate((["a", "b"], ["b", "c"], [], ["d"])):
            session = medium_session(index)
            session.phases[1].drills = [
                DrillInstance(id=i, name=i, duration=10, load=Intensity.LOW) for i in ids
            ]
            session.phases[1].principles_applied = ["Support"]
            session.drills_generated = bool(ids)
            sessions.append(session)

        usage = PlanUsageState.from_plan(sessions, 2, ["Support", "Width"])

        assert usage.frequency == Counter({"a": 1, "b": 2, "c": 1})
        assert usage.global_counts == Counter({"a": 1, "b": 2, "c": 1, "d": 1})
        assert usage.recent_ids == {"a", "b", "c"}
        assert usage.mentions("Support") == 2
        assert usage.mentions("Width") == 0

    def test_release_pick_undoes_record(self):
        usage = PlanUsageState()
        usage.record_pick("a")
        usage.record_pick("b")
        usage.release_pick("a")

        assert usage.global_counts["a"] == 0
        assert usage.global_counts["b"] == 1

        usage.release_pick("a")
        assert usage.global_counts["a"] == 0

    def test_finalize_records_session_before_snapshot(self):
        session = medium_session()
        session.principles_applied = ["Support and Width"]
        usage = PlanUsageState(focus_principles=["Support and Width"])

        finalize_session(session, {}, usage)

        assert session.principle_coverage_snapshot[0].count == 3
