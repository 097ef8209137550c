"""Load classes and their display colour/label mapping."""
from __future__ import annotations

from enum import Enum


class LoadClass(str, Enum):
    """Categorical training load for one day."""

    MATCH = "Match"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    RECOVERY = "Recovery"
    OFF = "Off"


LOAD_COLOR_MAP: dict[LoadClass, str] = {
    LoadClass.MATCH: "purple",
    LoadClass.HIGH: "red",
    LoadClass.MEDIUM: "yellow",
    LoadClass.LOW: "green",
    LoadClass.RECOVERY: "green",
    LoadClass.OFF: "grey",
}

LOAD_LABEL_MAP: dict[LoadClass, str] = {
    LoadClass.MATCH: "Match Day",
    LoadClass.HIGH: "High Intensity Training",
    LoadClass.MEDIUM: "Medium Load Training",
    LoadClass.LOW: "Low Load Training",
    LoadClass.RECOVERY: "Recovery & Regeneration",
    LoadClass.OFF: "Rest / Off Feet",
}

PENDING_COLOR = "grey"
PENDING_LABEL = "Training Day (load pending)"

# Per-day score used by the weekly load/monotony/strain analytics.
LOAD_SCORES: dict[LoadClass, float] = {
    LoadClass.HIGH: 3.0,
    LoadClass.MEDIUM: 2.0,
    LoadClass.LOW: 1.0,
    LoadClass.RECOVERY: 0.5,
    LoadClass.OFF: 0.0,
    LoadClass.MATCH: 3.5,
}
UNASSIGNED_SCORE = 1.0

# Drill-level load score used for a session's computed intensity.
DRILL_LOAD_SCORES: dict[str, int] = {"low": 1, "medium": 2, "high": 3}


def load_color(load: LoadClass | None) -> str:
    if load is None:
        return PENDING_COLOR
    return LOAD_COLOR_MAP[LoadClass(load)]


def load_label(load: LoadClass | None) -> str:
    if load is None:
        return PENDING_LABEL
    return LOAD_LABEL_MAP[LoadClass(load)]


def load_score(load: LoadClass | None) -> float:
    if load is None:
        return UNASSIGNED_SCORE
    return LOAD_SCORES[LoadClass(load)]
