"""Narrative summary and headline principles for a generated plan."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from periodizer.models.load_taxonomy import LoadClass
from periodizer.models.principles import PrinciplesCatalog
from periodizer.models.schemas import Fixture, TimelineDay
from periodizer.services.text_generation import TextGenerator, parse_json_payload

logger = logging.getLogger(__name__)

SOURCE_AI = "ai"
SOURCE_FALLBACK = "fallback"

# (category, candidate prefixes) used for the fallback headline principles.
FALLBACK_PRINCIPLES = (
    ("attacking", ("Penetration", "Support")),
    ("attacking", ("Mobility", "Width")),
    ("defending", ("Pressure", "Compactness")),
    ("transition", ("Transition to Attack", "Transition to Defend")),
)

SUMMARY_PROMPT = """You are an elite football periodization coach. Write a periodization summary for this training plan.

TEAM: {team}
DURATION: {descriptor} ({weeks} weeks from {first_date} to {last_date})
OBJECTIVE: {objective}

FIXTURES: {fixtures}

PERIODIZATION STRUCTURE:
- High intensity days: {high_days}
- Medium intensity days: {medium_days}
- Low/Recovery days: {low_days}
- Mesocycle phases: {phases}

TIMELINE:
{timeline}

The summary must be specific to this team's objective, justify the load
distribution and name the training principles that drive it.

Return STRICT JSON only:
{{"summary": "Periodization explanation...", "principles": ["Principle 1", "Principle 2", "Principle 3"]}}"""


@dataclass
class PlanNarrative:
    summary: str
    principles: list[str] = field(default_factory=list)
    source: str = SOURCE_FALLBACK


@dataclass
class _TimelineStats:
    weeks: int
    first_date: str
    last_date: str
    high_days: int
    medium_days: int
    low_days: int
    phases: list[str]


def _stats(timeline: Sequence[TimelineDay]) -> _TimelineStats:
    phases = [d.mesocycle_phase.value for d in timeline if d.mesocycle_phase]
    return _TimelineStats(
        weeks=len({d.week_index for d in timeline}),
        first_date=timeline[0].date.isoformat() if timeline else "",
        last_date=timeline[-1].date.isoformat() if timeline else "",
        high_days=sum(1 for d in timeline if d.load_class == LoadClass.HIGH),
        medium_days=sum(1 for d in timeline if d.load_class == LoadClass.MEDIUM),
        low_days=sum(1 for d in timeline if d.load_class in (LoadClass.LOW, LoadClass.RECOVERY)),
        phases=list(dict.fromkeys(phases)),
    )


def fallback_principles(catalog: PrinciplesCatalog | None) -> list[str]:
    if catalog is None:
        return [prefixes[0] for _, prefixes in FALLBACK_PRINCIPLES]
    picked: list[str] = []
    for category, prefixes in FALLBACK_PRINCIPLES:
        names = catalog.names(category)
        match = next((n for n in names if any(n.startswith(p) for p in prefixes)), None)
        match = match or (names[0] if names else None)
        if match:
            picked.append(match)
    return picked


def build_fallback_narrative(
    fixtures: Sequence[Fixture],
    descriptor: str,
    timeline: Sequence[TimelineDay],
    objective: str = "",
    catalog: PrinciplesCatalog | None = None,
) -> PlanNarrative:
    """Templated summary built from timeline statistics."""

    stats = _stats(timeline)
    total = len(fixtures)
    if total:
        match_clause = f"{total} match{'es' if total > 1 else ''}"
        importance = sum(f.importance_weight for f in fixtures) / total
    else:
        match_clause = "no matches"
        importance = 1.0

    parts = [
        f"Generated a {descriptor} plan ({stats.weeks} week span) from {stats.first_date} "
        f"to {stats.last_date} featuring {match_clause}.",
        f"High-load days: {stats.high_days}, medium: {stats.medium_days}, "
        f"low/recovery: {stats.low_days}.",
        f"Avg match importance weighting {importance:.2f}.",
    ]
    if stats.phases:
        parts.append(f"Phases traversed: {', '.join(stats.phases)}.")
    if objective:
        parts.append(f"Objective focus: {objective}.")

    return PlanNarrative(
        summary=" ".join(parts),
        principles=fallback_principles(catalog),
        source=SOURCE_FALLBACK,
    )


def build_summary_prompt(
    team_name: str,
    fixtures: Sequence[Fixture],
    descriptor: str,
    timeline: Sequence[TimelineDay],
    objective: str = "",
) -> str:
    stats = _stats(timeline)
    fixture_lines = ", ".join(
        f"{f.date.isoformat()}: vs {f.opponent} ({f.competition or 'League'})" for f in fixtures
    )
    timeline_lines = "\n".join(
        f"{d.date.isoformat()}: {d.load_class.value if d.load_class else 'Unassigned'} load, "
        f"{d.mesocycle_phase.value if d.mesocycle_phase else 'Unknown'} phase"
        + (f" (MATCH: {d.fixture.opponent})" if d.is_fixture and d.fixture else "")
        for d in timeline
    )
    return SUMMARY_PROMPT.format(
        team=team_name,
        descriptor=descriptor,
        weeks=stats.weeks,
        first_date=stats.first_date,
        last_date=stats.last_date,
        objective=objective or "General team development",
        fixtures=fixture_lines or "No matches scheduled",
        high_days=stats.high_days,
        medium_days=stats.medium_days,
        low_days=stats.low_days,
        phases=", ".join(stats.phases),
        timeline=timeline_lines,
    )


async def build_plan_narrative(
    generator: TextGenerator | None,
    team_name: str,
    fixtures: Sequence[Fixture],
    descriptor: str,
    timeline: Sequence[TimelineDay],
    objective: str = "",
    catalog: PrinciplesCatalog | None = None,
    max_tokens: int = 1500,
    temperature: float = 0.9,
) -> PlanNarrative:
    """Ask the collaborator for a summary; fall back to the templated one on any failure."""

    fallback = build_fallback_narrative(fixtures, descriptor, timeline, objective, catalog)
    if generator is None:
        return fallback

    prompt = build_summary_prompt(team_name, fixtures, descriptor, timeline, objective)
    try:
        text = await generator.generate(prompt, max_tokens=max_tokens, temperature=temperature)
        payload = parse_json_payload(text)
    except Exception:
        logger.warning("Plan summary generation failed for %s; using fallback summary", team_name, exc_info=True)
        return fallback

    summary = payload.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        logger.warning("Plan summary response had no summary text; using fallback summary")
        return fallback

    principles = payload.get("principles")
    if isinstance(principles, list):
        principles = [str(p).strip() for p in principles if str(p).strip()]
    else:
        principles = []

    return PlanNarrative(
        summary=summary.strip(),
        principles=principles or fallback.principles,
        source=SOURCE_AI,
    )
