"""Turn a timeline day into a drill-less session shell."""
from __future__ import annotations

import random

from periodizer.models.load_taxonomy import LoadClass, load_label
from periodizer.models.principles import PrinciplesCatalog
from periodizer.models.schemas import Intensity, Phase, PhaseType, Session, TimelineDay

# (category, name prefix) pairs resolved against the principles catalogue.
SESSION_PRINCIPLES: dict[str, list[tuple[str, str]]] = {
    "fixture": [
        ("attacking", "Penetration"),
        ("attacking", "Support"),
        ("transition", "Transition to Attack"),
        ("transition", "Transition to Defend"),
        ("defending", "Pressure"),
        ("defending", "Compactness"),
    ],
    "High": [
        ("attacking", "Penetration"),
        ("attacking", "Mobility"),
        ("defending", "Pressure"),
        ("defending", "Cover"),
        ("transition", "Transition to Attack (Positive Transition)"),
    ],
    "Medium": [
        ("attacking", "Support"),
        ("attacking", "Width"),
        ("defending", "Balance"),
        ("defending", "Compactness"),
        ("transition", "Transition to Defend (Negative Transition)"),
    ],
    "Low": [
        ("defending", "Control/Restraint"),
        ("defending", "Compactness"),
        ("attacking", "Support"),
        ("transition", "Transition to Defend (Negative Transition)"),
    ],
}

SESSION_EMPHASIS = {
    LoadClass.MATCH: "Compete; Execute tactical plan; Efficient warm-up",
    LoadClass.HIGH: "Progressive overload; Tactical intensity; Quality execution",
    LoadClass.MEDIUM: "Maintain sharpness; Technical consistency; Tactical cohesion",
    LoadClass.LOW: "Recovery; Movement quality; Mental freshness",
}

EXTENSION_PROBABILITY_HIGH = 0.5
EXTENSION_PROBABILITY_MEDIUM = 0.4
EXTENSION_PROBABILITY_LOW = 0.3


def structural_tier(load: LoadClass | None) -> LoadClass:
    """Load tier used for session structure; Recovery and Off train like Low."""

    if load in (LoadClass.HIGH, LoadClass.MEDIUM):
        return load
    return LoadClass.LOW


def session_principles(tier: str, catalog: PrinciplesCatalog | None = None) -> list[str]:
    entries = SESSION_PRINCIPLES[tier]
    if catalog is None:
        return [prefix for _, prefix in entries]
    return [catalog.find(category, prefix) for category, prefix in entries]


def _phase(name: str, focus: str, intensity: Intensity, phase_type: PhaseType) -> Phase:
    return Phase(name=name, focus=focus, target_intensity=intensity, phase_type=phase_type)


def _core_blocks(tier: LoadClass, rng: random.Random) -> list[Phase]:
    if tier == LoadClass.HIGH:
        blocks = [
            _phase("Technical", "High tempo ball circulation", Intensity.MEDIUM, PhaseType.TECHNICAL),
            _phase("Tactical", "Pressing & transition triggers", Intensity.HIGH, PhaseType.TACTICAL),
        ]
        if rng.random() < EXTENSION_PROBABILITY_HIGH:
            blocks.append(
                _phase("Technical Extension", "Small-sided speed of play", Intensity.MEDIUM, PhaseType.TECHNICAL)
            )
        else:
            blocks.append(
                _phase("Transition Game", "Rapid positive/negative transitions", Intensity.HIGH, PhaseType.TRANSITION)
            )
        return blocks

    if tier == LoadClass.MEDIUM:
        blocks = [
            _phase("Technical", "Refinement & receiving quality", Intensity.LOW, PhaseType.TECHNICAL),
            _phase("Tactical", "Positional play patterns", Intensity.MEDIUM, PhaseType.TACTICAL),
        ]
        if rng.random() < EXTENSION_PROBABILITY_MEDIUM:
            blocks.append(
                _phase("Applied Technical", "Pattern to goal / finishing", Intensity.MEDIUM, PhaseType.TECHNICAL)
            )
        return blocks

    blocks = [_phase("Technical", "Light technical maintenance", Intensity.LOW, PhaseType.TECHNICAL)]
    if rng.random() < EXTENSION_PROBABILITY_LOW:
        blocks.append(
            _phase("Tactical Walkthrough", "Structural rehearsal / shape", Intensity.LOW, PhaseType.TACTICAL)
        )
    return blocks


def session_name(load: LoadClass) -> str:
    if load in (LoadClass.HIGH, LoadClass.MEDIUM, LoadClass.LOW):
        return f"{load.value} Load Training Day"
    return load_label(load)


def derive_session_skeleton(
    day: TimelineDay,
    rng: random.Random,
    catalog: PrinciplesCatalog | None = None,
) -> Session:
    """Build the phase structure for one day; core blocks vary with ``rng``."""

    if day.is_fixture:
        return Session(
            name="Match Day + Activation",
            date=day.date,
            overall_load=LoadClass.MATCH,
            principles=SESSION_EMPHASIS[LoadClass.MATCH],
            principles_applied=session_principles("fixture", catalog),
            play_athletes="Starting XI + Bench",
            phases=[
                _phase("Activation", "Dynamic mobility & neural priming", Intensity.LOW, PhaseType.WARM),
                _phase("Pre-Match Tactical Review", "Set pieces & final cues", Intensity.LOW, PhaseType.TACTICAL),
                _phase("Cool Down", "Recovery & down-regulation", Intensity.LOW, PhaseType.COOL),
            ],
        )

    load = day.load_class or LoadClass.LOW
    tier = structural_tier(load)
    phases = [
        _phase("Warm Up", "Movement prep & ball activation", Intensity.LOW, PhaseType.WARM),
        *_core_blocks(tier, rng),
        _phase("Cool Down", "Flexibility & recovery", Intensity.LOW, PhaseType.COOL),
    ]
    return Session(
        name=session_name(load),
        date=day.date,
        overall_load=load,
        principles=SESSION_EMPHASIS[tier],
        principles_applied=session_principles(tier.value, catalog),
        play_athletes="Full Squad",
        phases=phases,
    )
