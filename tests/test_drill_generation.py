"""Tests for curated, generative and hybrid drill population."""
from __future__ import annotations

import datetime as dt
import json
import random
from collections import Counter

import pytest

from periodizer.models.drill_library import DrillLibrary
from periodizer.models.load_taxonomy import LoadClass
from periodizer.models.schemas import (
    DrillTemplate,
    FocusPrinciples,
    GenerationMode,
    Intensity,
    Phase,
    PhaseType,
    Session,
)
from periodizer.services.drill_generation import (
    CuratedDrillStrategy,
    GenerativeDrillStrategy,
    HybridDrillStrategy,
    build_generation_strategy,
    infer_load_from_phase,
    sanitize_generated_drill,
)
from periodizer.services.drill_selector import DRILL_WARNING, DrillSelector, PlanUsageState, session_drill_cap


def make_session() -> Session:
    def phase(name, phase_type, intensity):
        return Phase(name=name, focus=f"{name} focus", target_intensity=intensity, phase_type=phase_type)

    return Session(
        name="Medium Load Training Day",
        date=dt.date(2025, 3, 4),
        overall_load=LoadClass.MEDIUM,
        principles_applied=["Support and Width", "Pressure on the Ball"],
        phases=[
            phase("Warm Up", PhaseType.WARM, Intensity.LOW),
            phase("Technical", PhaseType.TECHNICAL, Intensity.LOW),
            phase("Tactical", PhaseType.TACTICAL, Intensity.MEDIUM),
            phase("Cool Down", PhaseType.COOL, Intensity.LOW),
        ],
    )


def drills_payload(*names, **extra) -> str:
    return json.dumps({"drills": [{"name": name, "duration": 12, "load": "Medium", **extra} for name in names]})


def phase_ids(session):
    return [[d.id for d in p.drills] for p in session.phases]


class TestSanitize:
    @pytest.fixture
    def tactical(self) -> Phase:
        return Phase(name="Tactical Game", focus="", target_intensity=Intensity.HIGH, phase_type=PhaseType.TACTICAL)

    def test_full_record(self, tactical):
        drill = sanitize_generated_drill(
            {
                "name": "Press Trigger 6v4",
                "duration": 14.4,
                "load": "high",
                "objective_primary": "Win the ball in the first three passes",
                "equipment": "Balls, Bibs",
                "players": {"arrangement": "6v4 + GK"},
                "space": "40x30m",
            },
            session_index=3,
            phase=tactical,
            position=1,
            session_load=LoadClass.HIGH,
        )

        assert drill.id == "gen_3_tactical_game_1"
        assert drill.duration == 14
        assert drill.load == Intensity.HIGH
        assert drill.equipment == ["Balls", "Bibs"]
        assert drill.player_arrangement == "6v4 + GK"
        assert drill.space_dimensions == "40x30m"
        assert drill.generated is True
        assert drill.source.name == "ai-generated"
        assert drill.source.quality_weight == 0.5

    def test_junk_values_are_coerced(self, tactical):
        drill = sanitize_generated_drill(
            {"name": "x" * 200, "duration": "long", "load": "Extreme"},
            session_index=0,
            phase=tactical,
            position=0,
            session_load=LoadClass.MEDIUM,
        )

        assert len(drill.name) == 80
        assert drill.duration == 10
        assert drill.load == Intensity.MEDIUM
        assert drill.objective

    @pytest.mark.parametrize("duration, expected", [(1, 4), (90, 40), (float("nan"), 10), (True, 10)])
    def test_duration_clamped(self, tactical, duration, expected):
        drill = sanitize_generated_drill(
            {"name": "Drill", "duration": duration},
            session_index=0,
            phase=tactical,
            position=0,
            session_load=LoadClass.MEDIUM,
        )
        assert drill.duration == expected

    @pytest.mark.parametrize(
        "phase_type, session_load, expected",
        [
            (PhaseType.WARM, LoadClass.HIGH, Intensity.LOW),
            (PhaseType.COOL, LoadClass.HIGH, Intensity.LOW),
            (PhaseType.TACTICAL, LoadClass.HIGH, Intensity.HIGH),
            (PhaseType.TRANSITION, LoadClass.LOW, Intensity.MEDIUM),
            (PhaseType.TECHNICAL, LoadClass.HIGH, Intensity.MEDIUM),
            (PhaseType.TECHNICAL, LoadClass.RECOVERY, Intensity.LOW),
        ],
    )
    def test_inferred_load(self, phase_type, session_load, expected):
        assert infer_load_from_phase(phase_type, session_load) == expected


class TestStrategies:
    def test_factory(self, library):
        selector = DrillSelector(library, random.Random(0))

        assert isinstance(build_generation_strategy(GenerationMode.CURATED, selector, None), CuratedDrillStrategy)
        assert isinstance(build_generation_strategy(GenerationMode.GENERATIVE, selector, None), GenerativeDrillStrategy)
        assert isinstance(build_generation_strategy(GenerationMode.HYBRID, selector, None), HybridDrillStrategy)

    @pytest.mark.asyncio
    async def test_curated_uses_library_only(self, library):
        session = make_session()

        await CuratedDrillStrategy(DrillSelector(library, random.Random(0))).populate(
            session, 0, FocusPrinciples(), PlanUsageState()
        )

        assert all(not d.generated for p in session.phases for d in p.drills)
        assert session.drills_generated is True

    @pytest.mark.asyncio
    async def test_generative_replaces_every_phase(self, library, scripted_generator):
        generator = scripted_generator(
            drills_payload("Warm A"),
            drills_payload("Tech A"),
            drills_payload("Tact A", "Tact B", "Tact C"),
            drills_payload("Cool A"),
        )
        session = make_session()
        usage = PlanUsageState()

        await GenerativeDrillStrategy(DrillSelector(library, random.Random(0)), generator).populate(
            session, 2, FocusPrinciples(), usage
        )

        assert [[d.name for d in p.drills] for p in session.phases] == [
            ["Warm A"],
            ["Tech A"],
            ["Tact A", "Tact B"],
            ["Cool A"],
        ]
        assert phase_ids(session)[2] == ["gen_2_tactical_0", "gen_2_tactical_1"]
        assert len(generator.prompts) == 4
        assert "NUMBER OF DRILLS: 2" in generator.prompts[2]
        assert "Pressure on the Ball" in generator.prompts[0]
        # curated picks that were replaced no longer count as used
        assert +usage.global_counts == Counter(i for ids in phase_ids(session) for i in ids)
        assert session.phases[2].duration == 24
        assert session.drill_warning is None

    @pytest.mark.asyncio
    async def test_failed_phase_keeps_library_drills(self, library, scripted_generator):
        generator = scripted_generator(
            RuntimeError("timeout"),
            "no json here",
            json.dumps({"drills": "Tact A"}),
            drills_payload("Cool A"),
        )
        session = make_session()

        await GenerativeDrillStrategy(DrillSelector(library, random.Random(0)), generator).populate(
            session, 0, FocusPrinciples(), PlanUsageState()
        )

        assert not any(d.generated for p in session.phases[:3] for d in p.drills)
        assert all(p.drills for p in session.phases[:3])
        assert [d.name for d in session.phases[3].drills] == ["Cool A"]

    @pytest.mark.asyncio
    async def test_generative_without_generator_falls_back_to_library(self, library):
        session = make_session()

        await GenerativeDrillStrategy(DrillSelector(library, random.Random(0)), None).populate(
            session, 0, FocusPrinciples(), PlanUsageState()
        )

        assert all(p.drills for p in session.phases)
        assert not any(d.generated for p in session.phases for d in p.drills)

    @pytest.mark.asyncio
    async def test_hybrid_fills_only_empty_phases(self, scripted_generator):
        technical_only = DrillLibrary(
            [
                DrillTemplate(
                    id=f"tech_{i}",
                    name=f"Tech {i}",
                    phase=PhaseType.TECHNICAL,
                    objective_primary="Passing quality",
                    duration_min=8,
                    duration_max=12,
                )
                for i in range(5)
            ]
        )
        generator = scripted_generator(
            drills_payload("Warm A"),
            drills_payload("Tact A", "Tact B"),
            drills_payload("Cool A"),
        )
        session = make_session()

        await HybridDrillStrategy(DrillSelector(technical_only, random.Random(0)), generator).populate(
            session, 0, FocusPrinciples(), PlanUsageState()
        )

        assert len(generator.prompts) == 3
        assert all(d.id.startswith("tech_") for d in session.phases[1].drills)
        assert [d.name for d in session.phases[2].drills] == ["Tact A", "Tact B"]
        assert session.drill_warning is None

    @pytest.mark.asyncio
    async def test_hybrid_failure_leaves_warning(self, scripted_generator):
        technical_only = DrillLibrary(
            [
                DrillTemplate(
                    id=f"tech_{i}",
                    name=f"Tech {i}",
                    phase=PhaseType.TECHNICAL,
                    objective_primary="Passing quality",
                    duration_min=8,
                    duration_max=12,
                )
                for i in range(5)
            ]
        )
        generator = scripted_generator(RuntimeError("down"), RuntimeError("down"), RuntimeError("down"))
        session = make_session()

        await HybridDrillStrategy(DrillSelector(technical_only, random.Random(0)), generator).populate(
            session, 0, FocusPrinciples(), PlanUsageState()
        )

        assert session.drill_warning == DRILL_WARNING
        assert session.drills_generated is True

    @pytest.mark.asyncio
    async def test_hybrid_respects_session_cap_without_warm_drills(self, scripted_generator):
        def template(phase_type, i):
            return DrillTemplate(
                id=f"{phase_type.value}_{i}",
                name=f"{phase_type.value} {i}",
                phase=phase_type,
                objective_primary="Quality",
                duration_min=8,
                duration_max=12,
            )

        no_warm = DrillLibrary(
            [template(p, i) for p in (PhaseType.TECHNICAL, PhaseType.TACTICAL, PhaseType.COOL) for i in range(4)]
        )
        generator = scripted_generator(drills_payload("Warm A"))
        session = make_session()
        selector = DrillSelector(no_warm, random.Random(0))

        await HybridDrillStrategy(selector, generator).populate(session, 0, FocusPrinciples(), PlanUsageState())

        counts = [len(p.drills) for p in session.phases]
        assert len(generator.prompts) == 1
        assert [d.name for d in session.phases[0].drills] == ["Warm A"]
        assert sum(counts) <= session_drill_cap(LoadClass.MEDIUM)
        assert counts == [1, 1, 2, 1]
