"""Drill generation modes: curated library, model-generated, or a hybrid of both."""
from __future__ import annotations

import logging
import math
import re
from typing import Any, Protocol

from periodizer.exceptions import MalformedResponseError
from periodizer.models.load_taxonomy import LoadClass
from periodizer.models.schemas import (
    DrillInstance,
    DrillSource,
    FocusPrinciples,
    GenerationMode,
    Intensity,
    Phase,
    PhaseType,
    Session,
    TimelineDay,
)
from periodizer.services.drill_selector import DrillSelector, PlanUsageState, finalize_session
from periodizer.services.text_generation import TextGenerator, parse_json_payload

logger = logging.getLogger(__name__)

MAX_GENERATED_PER_PHASE = 4
NAME_MAX_LENGTH = 80
MIN_GENERATED_DURATION = 4
MAX_GENERATED_DURATION = 40
DEFAULT_GENERATED_DURATION = 10
GENERATED_SOURCE = DrillSource(name="ai-generated", quality_weight=0.5)
DEFAULT_OBJECTIVE = "Execute with quality and intensity."

PHASE_DRILL_PROMPT = """You are an elite football periodization coach. Design drills for one phase of a training session.

SESSION CONTEXT:
- Date: {date}
- Overall load: {load}
- Mesocycle phase: {mesocycle}
- Week index: {week}
- Match day: {match}

SESSION PRINCIPLES: {principles}
PLAN FOCUS PRINCIPLES: {focus}

PHASE: {phase_name} ({phase_type}), target intensity {intensity}
FOCUS: {phase_focus}
NUMBER OF DRILLS: {count}

Keep the total duration of the phase realistic (35 minutes at most) and the
intensity aligned with the target. A cool-down must emphasise recovery and
down-regulation.

Return STRICT JSON only in this schema:
{{"drills": [{{"name": "Drill name", "duration": 10, "load": "Low|Medium|High", "objective_primary": "Primary objective", "objectives_secondary": ["Secondary"], "equipment": ["Balls", "Cones"], "coaching_points": ["Point"], "constraints": ["Rule"], "progressions": ["Progression"], "regressions": ["Regression"], "players": {{"arrangement": "Numbers / shape"}}, "space": {{"dimensions": "Area"}}}}]}}"""


def _slug(text: str) -> str:
    return re.sub(r"\s+", "_", text.strip()).lower()


def infer_load_from_phase(phase_type: PhaseType, session_load: LoadClass) -> Intensity:
    """Fallback drill load when a generated drill names none (or an invalid one)."""

    if phase_type in (PhaseType.WARM, PhaseType.COOL):
        return Intensity.LOW
    if phase_type in (PhaseType.TACTICAL, PhaseType.TRANSITION):
        return Intensity.HIGH if session_load == LoadClass.HIGH else Intensity.MEDIUM
    if session_load == LoadClass.HIGH:
        return Intensity.MEDIUM
    if session_load == LoadClass.MEDIUM:
        return Intensity.MEDIUM
    return Intensity.LOW


def _string_list(value: Any) -> list[str]:
    if isinstance(value, list):
        return [str(item).strip() for item in value if str(item).strip()]
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return []


def _nested_text(value: Any, key: str) -> str:
    if isinstance(value, dict):
        return str(value.get(key) or "")
    if isinstance(value, str):
        return value
    return ""


def sanitize_generated_drill(
    raw: dict[str, Any],
    *,
    session_index: int,
    phase: Phase,
    position: int,
    session_load: LoadClass,
) -> DrillInstance:
    """Coerce one model-produced drill into a ``DrillInstance`` with safe values."""

    name = str(raw.get("name") or "Unnamed Drill").strip()[:NAME_MAX_LENGTH] or "Unnamed Drill"

    duration = raw.get("duration")
    if isinstance(duration, (int, float)) and not isinstance(duration, bool) and math.isfinite(duration):
        duration = max(MIN_GENERATED_DURATION, min(MAX_GENERATED_DURATION, round(duration)))
    else:
        duration = DEFAULT_GENERATED_DURATION

    load_text = str(raw.get("load") or "").strip().capitalize()
    if load_text in {i.value for i in Intensity}:
        load = Intensity(load_text)
    else:
        load = infer_load_from_phase(phase.phase_type, session_load)

    return DrillInstance(
        id=f"gen_{session_index}_{_slug(phase.name)}_{position}",
        name=name,
        duration=int(duration),
        load=load,
        staff="Coach",
        phase=phase.name,
        objective=str(raw.get("objective_primary") or raw.get("description") or DEFAULT_OBJECTIVE),
        secondary_objectives=_string_list(raw.get("objectives_secondary")),
        equipment=_string_list(raw.get("equipment")),
        coaching_points=_string_list(raw.get("coaching_points")),
        constraints=_string_list(raw.get("constraints")),
        progressions=_string_list(raw.get("progressions")),
        regressions=_string_list(raw.get("regressions")),
        player_arrangement=_nested_text(raw.get("players"), "arrangement"),
        space_dimensions=_nested_text(raw.get("space"), "dimensions"),
        source=GENERATED_SOURCE.model_copy(),
        generated=True,
    )


class DrillGenerationStrategy(Protocol):
    mode: GenerationMode

    async def populate(
        self,
        session: Session,
        session_index: int,
        focus: FocusPrinciples,
        usage: PlanUsageState,
        day: TimelineDay | None = None,
    ) -> Session:
        ...


class CuratedDrillStrategy:
    """Library-only selection."""

    mode = GenerationMode.CURATED

    def __init__(self, selector: DrillSelector) -> None:
        self.selector = selector

    async def populate(
        self,
        session: Session,
        session_index: int,
        focus: FocusPrinciples,
        usage: PlanUsageState,
        day: TimelineDay | None = None,
    ) -> Session:
        return self.selector.populate(session, session_index, focus, usage)


class GenerativeDrillStrategy:
    """Curated selection first, then each phase replaced by model-generated drills.

    The collaborator is asked once per phase, one phase at a time. A phase whose
    request fails or returns an unusable payload keeps its curated drills.
    """

    mode = GenerationMode.GENERATIVE
    only_empty_phases = False

    def __init__(
        self,
        selector: DrillSelector,
        generator: TextGenerator | None,
        max_tokens: int = 1400,
        temperature: float = 0.8,
    ) -> None:
        self.selector = selector
        self.generator = generator
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def populate(
        self,
        session: Session,
        session_index: int,
        focus: FocusPrinciples,
        usage: PlanUsageState,
        day: TimelineDay | None = None,
    ) -> Session:
        selection = self.selector.select(session, session_index, focus, usage)
        drills_by_phase = selection.instances(session)

        if self.generator is None:
            logger.warning("%s drill generation requested without a text generator; using library drills", self.mode.value)
            return finalize_session(session, drills_by_phase, usage)

        for index, phase in enumerate(session.phases):
            budget = selection.budgets.get(index, 0)
            if budget <= 0:
                continue
            if self.only_empty_phases and drills_by_phase.get(index):
                continue
            generated = await self._generate_phase(session, session_index, phase, budget, focus, day)
            if not generated:
                continue
            for replaced in drills_by_phase.get(index, []):
                usage.release_pick(replaced.id)
            drills_by_phase[index] = generated
            for drill in generated:
                usage.record_pick(drill.id)

        return finalize_session(session, drills_by_phase, usage)

    async def _generate_phase(
        self,
        session: Session,
        session_index: int,
        phase: Phase,
        budget: int,
        focus: FocusPrinciples,
        day: TimelineDay | None,
    ) -> list[DrillInstance]:
        count = min(budget, MAX_GENERATED_PER_PHASE)
        prompt = self._build_prompt(session, phase, count, focus, day)
        try:
            text = await self.generator.generate(
                prompt,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
            payload = parse_json_payload(text)
            raw_drills = payload.get("drills")
            if not isinstance(raw_drills, list):
                raise MalformedResponseError("drills missing or not a list")
        except Exception:
            logger.warning(
                "Drill generation failed for session %d phase %s; keeping library drills",
                session_index,
                phase.name,
                exc_info=True,
            )
            return []

        drills = [
            sanitize_generated_drill(
                raw,
                session_index=session_index,
                phase=phase,
                position=position,
                session_load=session.overall_load,
            )
            for position, raw in enumerate(d for d in raw_drills if isinstance(d, dict))
        ]
        return drills[:count]

    @staticmethod
    def _build_prompt(
        session: Session,
        phase: Phase,
        count: int,
        focus: FocusPrinciples,
        day: TimelineDay | None,
    ) -> str:
        if day is not None and day.is_fixture and day.fixture is not None:
            match = f"YES - match vs {day.fixture.opponent}"
        else:
            match = "NO"
        return PHASE_DRILL_PROMPT.format(
            date=session.date.isoformat(),
            load=session.overall_load.value,
            mesocycle=(day.mesocycle_phase.value if day and day.mesocycle_phase else "Unknown"),
            week=(day.week_index if day else "Unknown"),
            match=match,
            principles="; ".join(session.principles_applied) or "General team development",
            focus=", ".join(focus.names()) or "General development",
            phase_name=phase.name,
            phase_type=phase.phase_type.value,
            intensity=phase.target_intensity.value,
            phase_focus=phase.focus,
            count=count,
        )


class HybridDrillStrategy(GenerativeDrillStrategy):
    """Library first; the model only fills phases the library left empty."""

    mode = GenerationMode.HYBRID
    only_empty_phases = True


def build_generation_strategy(
    mode: GenerationMode,
    selector: DrillSelector,
    generator: TextGenerator | None,
) -> DrillGenerationStrategy:
    if mode == GenerationMode.GENERATIVE:
        return GenerativeDrillStrategy(selector, generator)
    if mode == GenerationMode.HYBRID:
        return HybridDrillStrategy(selector, generator)
    return CuratedDrillStrategy(selector)
