"""Assign a load class, MD label and mesocycle phase to every timeline day."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol

from periodizer.exceptions import MalformedResponseError
from periodizer.models.load_taxonomy import LoadClass, load_color, load_label
from periodizer.models.schemas import LoadAssignmentMode, MesocyclePhase, TimelineDay
from periodizer.services.text_generation import TextGenerator, parse_json_payload

logger = logging.getLogger(__name__)

TAPER_IMPORTANCE_THRESHOLD = 1.15
FORWARD_WINDOW_DAYS = 6
BACKWARD_WINDOW_DAYS = 3
CONGESTION_GAP_DAYS = 3

# date.weekday(): Monday == 0
WEEKDAY_FALLBACK: dict[int, LoadClass] = {
    0: LoadClass.HIGH,
    1: LoadClass.MEDIUM,
    2: LoadClass.HIGH,
    3: LoadClass.MEDIUM,
    4: LoadClass.LOW,
    5: LoadClass.LOW,
    6: LoadClass.RECOVERY,
}

_MESOCYCLE_VALUES = {phase.value for phase in MesocyclePhase}

AI_FALLBACK_WARNING = (
    "AI-assisted load assignment unavailable; the deterministic match-day template was used."
)


def mesocycle_phase(week_index: int) -> MesocyclePhase:
    if week_index <= 1:
        return MesocyclePhase.ACCUMULATION
    if week_index <= 3:
        return MesocyclePhase.INTENSIFICATION
    if week_index == 4:
        return MesocyclePhase.TAPER
    if week_index == 5:
        return MesocyclePhase.TRANSITION
    return MesocyclePhase.MAINTENANCE


def md_label_for(index: int, previous_fixture: int | None, next_fixture: int | None) -> str | None:
    """MD label relative to the surrounding fixtures; the upcoming match wins."""

    if next_fixture is not None and 1 <= next_fixture - index <= FORWARD_WINDOW_DAYS:
        return f"MD-{next_fixture - index}"
    if previous_fixture is not None and 1 <= index - previous_fixture <= BACKWARD_WINDOW_DAYS:
        return f"MD+{index - previous_fixture}"
    return None


def load_for_md_label(
    md_label: str | None,
    upcoming_importance: float = 1.0,
    taper_threshold: float = TAPER_IMPORTANCE_THRESHOLD,
) -> LoadClass | None:
    """Match-day-relative load template, tapering harder before important matches."""

    important = upcoming_importance > taper_threshold
    template = {
        "MD-6": LoadClass.HIGH,
        "MD-5": LoadClass.HIGH,
        "MD-4": LoadClass.HIGH,
        "MD-3": LoadClass.MEDIUM,
        "MD-2": LoadClass.LOW if important else LoadClass.MEDIUM,
        "MD-1": LoadClass.RECOVERY if important else LoadClass.LOW,
        "MD+1": LoadClass.RECOVERY,
        "MD+2": LoadClass.LOW,
        "MD+3": LoadClass.MEDIUM,
    }
    return template.get(md_label or "")


def congestion_load(index: int, previous_fixture: int, next_fixture: int) -> LoadClass:
    """Load for a day squeezed between two fixtures at most three days apart."""

    after_previous = index == previous_fixture + 1
    before_next = index == next_fixture - 1
    if after_previous and not before_next:
        return LoadClass.RECOVERY
    if before_next and not after_previous:
        return LoadClass.LOW
    return LoadClass.MEDIUM


def apply_load(day: TimelineDay, load: LoadClass) -> None:
    """Set a day's load class and refresh its display fields."""

    day.load_class = load
    day.color = load_color(load)
    if load == LoadClass.MATCH and day.fixture is not None:
        day.label = f"{load_label(load)} vs {day.fixture.opponent}"
    else:
        day.label = load_label(load)


def assign_deterministic(
    days: list[TimelineDay],
    taper_threshold: float = TAPER_IMPORTANCE_THRESHOLD,
) -> list[TimelineDay]:
    """Rule-based assignment used as default and as the fallback of every other strategy."""

    fixture_indexes = [day.day_index for day in days if day.is_fixture]

    for day in days:
        day.mesocycle_phase = mesocycle_phase(day.week_index)
        if day.is_fixture:
            apply_load(day, LoadClass.MATCH)
            day.md_label = "MD"
            continue

        index = day.day_index
        previous_fixture = max((f for f in fixture_indexes if f < index), default=None)
        next_fixture = min((f for f in fixture_indexes if f > index), default=None)

        md_label = md_label_for(index, previous_fixture, next_fixture)
        upcoming = 1.0
        if next_fixture is not None:
            fixture = days[next_fixture].fixture
            upcoming = fixture.importance_weight if fixture else 1.0
        load = load_for_md_label(md_label, upcoming, taper_threshold)

        if (
            previous_fixture is not None
            and next_fixture is not None
            and next_fixture - previous_fixture <= CONGESTION_GAP_DAYS
        ):
            load = congestion_load(index, previous_fixture, next_fixture)

        if load is None:
            load = WEEKDAY_FALLBACK[day.date.weekday()]

        apply_load(day, load)
        day.md_label = md_label
    return days


@dataclass
class AssignmentResult:
    source: LoadAssignmentMode
    warnings: list[str] = field(default_factory=list)
    applied_days: int = 0


class LoadAssignmentStrategy(Protocol):
    async def assign(
        self,
        days: list[TimelineDay],
        *,
        objective: str = "",
        focus_principles: Iterable[str] = (),
    ) -> AssignmentResult:
        ...


class DeterministicLoadAssigner:
    """Match-day template strategy; never calls out."""

    def __init__(self, taper_threshold: float = TAPER_IMPORTANCE_THRESHOLD) -> None:
        self.taper_threshold = taper_threshold

    async def assign(
        self,
        days: list[TimelineDay],
        *,
        objective: str = "",
        focus_principles: Iterable[str] = (),
    ) -> AssignmentResult:
        assign_deterministic(days, self.taper_threshold)
        return AssignmentResult(
            source=LoadAssignmentMode.DETERMINISTIC,
            applied_days=sum(1 for d in days if not d.is_fixture),
        )


LOAD_ASSIGNMENT_PROMPT = """You are an elite football periodization coach. Distribute training load across the plan below.

TEAM OBJECTIVE: {objective}
FOCUS PRINCIPLES: {principles}

FIXTURES IN PERIOD:
{fixtures}

TIMELINE (day_index: date, type):
{timeline}

For every training day choose one load class: High, Medium, Low, Recovery or Off.
Match days are fixed and must not be changed. Respect recovery after matches and
taper before important fixtures, and shape the distribution around the objective
and the focus principles. Give each day a short rationale.

Valid mesocycle phases: Accumulation, Intensification, Taper, Transition, Maintenance.

Return STRICT JSON only:
{{"load_distribution": [{{"day_index": 0, "load_class": "High", "md_label": "MD-4", "mesocycle_phase": "Accumulation", "rationale": "..."}}]}}"""


class AIAssistedLoadAssigner:
    """Delegates the distribution to the text-generation collaborator.

    The deterministic template runs first so every day holds a valid load even
    when the collaborator fails or answers with a partial or malformed list;
    valid entries from the response then overwrite individual training days.
    """

    def __init__(
        self,
        generator: TextGenerator | None,
        fallback: DeterministicLoadAssigner | None = None,
        max_tokens: int = 4000,
        temperature: float = 0.7,
    ) -> None:
        self.generator = generator
        self.fallback = fallback or DeterministicLoadAssigner()
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def assign(
        self,
        days: list[TimelineDay],
        *,
        objective: str = "",
        focus_principles: Iterable[str] = (),
    ) -> AssignmentResult:
        await self.fallback.assign(days)
        focus_principles = list(focus_principles)

        if self.generator is None:
            logger.warning("AI-assisted load assignment requested without a text generator")
            return AssignmentResult(LoadAssignmentMode.DETERMINISTIC, [AI_FALLBACK_WARNING])

        prompt = self._build_prompt(days, objective, focus_principles)
        try:
            text = await self.generator.generate(
                prompt,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
            payload = parse_json_payload(text)
            entries = payload.get("load_distribution")
            if not isinstance(entries, list):
                raise MalformedResponseError("load_distribution missing or not a list")
        except Exception:
            logger.warning("AI-assisted load assignment failed; keeping deterministic loads", exc_info=True)
            return AssignmentResult(LoadAssignmentMode.DETERMINISTIC, [AI_FALLBACK_WARNING])

        applied = self._apply(days, entries)
        if applied == 0:
            logger.warning("AI load distribution contained no usable entries")
            return AssignmentResult(LoadAssignmentMode.DETERMINISTIC, [AI_FALLBACK_WARNING])

        logger.info("Applied AI load distribution to %d of %d days", applied, len(days))
        return AssignmentResult(LoadAssignmentMode.AI_ASSISTED, applied_days=applied)

    @staticmethod
    def _build_prompt(days: list[TimelineDay], objective: str, focus_principles: list[str]) -> str:
        fixtures = [
            f"- {d.date.isoformat()}: vs {d.fixture.opponent} ({d.fixture.competition or 'League'}), "
            f"importance {d.fixture.importance_weight}"
            for d in days
            if d.is_fixture and d.fixture
        ]
        timeline = [
            f"{d.day_index}: {d.date.isoformat()} {d.date.strftime('%a')}, "
            + (f"MATCH DAY vs {d.fixture.opponent}" if d.is_fixture and d.fixture else "training day")
            for d in days
        ]
        return LOAD_ASSIGNMENT_PROMPT.format(
            objective=objective or "General team development",
            principles=", ".join(focus_principles) or "General development",
            fixtures="\n".join(fixtures) or "No matches scheduled",
            timeline="\n".join(timeline),
        )

    @staticmethod
    def _apply(days: list[TimelineDay], entries: list[Any]) -> int:
        applied = 0
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            index = entry.get("day_index")
            if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < len(days):
                continue
            day = days[index]
            if day.is_fixture:
                continue
            try:
                load = LoadClass(str(entry.get("load_class", "")).strip().capitalize())
            except ValueError:
                continue
            if load == LoadClass.MATCH:
                continue

            apply_load(day, load)
            md_label = entry.get("md_label")
            if md_label:
                day.md_label = str(md_label)
            phase = entry.get("mesocycle_phase")
            if phase in _MESOCYCLE_VALUES:
                day.mesocycle_phase = MesocyclePhase(phase)
            rationale = entry.get("rationale")
            day.ai_rationale = str(rationale) if rationale else None
            applied += 1
        return applied
