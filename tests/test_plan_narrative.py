"""Tests for the plan summary narrative and its fallback."""
from __future__ import annotations

import json

import pytest

from periodizer.services.periodization import assign_deterministic
from periodizer.services.plan_narrative import (
    SOURCE_AI,
    SOURCE_FALLBACK,
    build_fallback_narrative,
    build_plan_narrative,
    build_summary_prompt,
    fallback_principles,
)


@pytest.fixture
def timeline(make_days):
    return assign_deterministic(make_days(7, fixture_indexes=(6,)))


@pytest.fixture
def fixtures(timeline):
    return [d.fixture for d in timeline if d.is_fixture]


def test_fallback_summary_text(timeline, fixtures, catalog):
    narrative = build_fallback_narrative(fixtures, "1-week", timeline, "Press higher", catalog)

    assert narrative.source == SOURCE_FALLBACK
    assert narrative.summary.startswith(
        "Generated a 1-week plan (1 week span) from 2025-03-03 to 2025-03-09 featuring 1 match."
    )
    assert "Avg match importance weighting 1.00." in narrative.summary
    assert "Phases traversed: Accumulation." in narrative.summary
    assert narrative.summary.endswith("Objective focus: Press higher.")


def test_fallback_without_fixtures(make_days):
    timeline = assign_deterministic(make_days(14))

    narrative = build_fallback_narrative([], "2-week", timeline)

    assert "featuring no matches" in narrative.summary
    assert "High-load days: 4, medium: 4, low/recovery: 6." in narrative.summary
    assert "Objective focus" not in narrative.summary


def test_fallback_principles(catalog):
    assert fallback_principles(catalog) == [
        "Penetration",
        "Width",
        "Pressure",
        "Transition to Attack (Positive Transition)",
    ]
    assert fallback_principles(None) == ["Penetration", "Mobility", "Pressure", "Transition to Attack"]


def test_prompt_mentions_team_fixtures_and_objective(timeline, fixtures):
    prompt = build_summary_prompt("Riverside FC", fixtures, "1-week", timeline, "Press higher")

    assert "TEAM: Riverside FC" in prompt
    assert "vs Opponent 6" in prompt
    assert "OBJECTIVE: Press higher" in prompt
    assert "(MATCH: Opponent 6)" in prompt


@pytest.mark.asyncio
async def test_ai_summary_used_when_valid(timeline, fixtures, catalog, scripted_generator):
    generator = scripted_generator(
        "```json\n"
        + json.dumps({"summary": "  Build then taper.  ", "principles": ["Pressure", " ", "Cover"]})
        + "\n```"
    )

    narrative = await build_plan_narrative(generator, "Riverside FC", fixtures, "1-week", timeline, catalog=catalog)

    assert narrative.source == SOURCE_AI
    assert narrative.summary == "Build then taper."
    assert narrative.principles == ["Pressure", "Cover"]


@pytest.mark.asyncio
async def test_ai_summary_without_principles_uses_fallback_principles(timeline, fixtures, catalog, scripted_generator):
    generator = scripted_generator(json.dumps({"summary": "Build then taper."}))

    narrative = await build_plan_narrative(generator, "Riverside FC", fixtures, "1-week", timeline, catalog=catalog)

    assert narrative.source == SOURCE_AI
    assert narrative.principles == fallback_principles(catalog)


@pytest.mark.parametrize(
    "response",
    [
        RuntimeError("overloaded"),
        "I cannot do that",
        json.dumps({"summary": ""}),
        json.dumps({"summary": 42}),
    ],
)
@pytest.mark.asyncio
async def test_failures_fall_back(timeline, fixtures, scripted_generator, response):
    narrative = await build_plan_narrative(
        scripted_generator(response), "Riverside FC", fixtures, "1-week", timeline
    )

    assert narrative.source == SOURCE_FALLBACK
    assert narrative.summary.startswith("Generated a 1-week plan")


@pytest.mark.asyncio
async def test_no_generator_falls_back(timeline, fixtures):
    narrative = await build_plan_narrative(None, "Riverside FC", fixtures, "1-week", timeline)

    assert narrative.source == SOURCE_FALLBACK
    assert narrative.summary
