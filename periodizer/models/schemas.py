"""Pydantic models for plans, timelines, sessions and API payloads."""
import datetime as dt
import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from periodizer.models.load_taxonomy import PENDING_COLOR, PENDING_LABEL, LoadClass


class MesocyclePhase(str, Enum):
    ACCUMULATION = "Accumulation"
    INTENSIFICATION = "Intensification"
    TAPER = "Taper"
    TRANSITION = "Transition"
    MAINTENANCE = "Maintenance"


class Intensity(str, Enum):
    """Target intensity of a phase, or the load of a single drill."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class PhaseType(str, Enum):
    WARM = "warm"
    TECHNICAL = "technical"
    TACTICAL = "tactical"
    TRANSITION = "transition"
    COOL = "cool"


class Variability(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class GenerationMode(str, Enum):
    CURATED = "curated"
    GENERATIVE = "generative"
    HYBRID = "hybrid"


class LoadAssignmentMode(str, Enum):
    DETERMINISTIC = "deterministic"
    AI_ASSISTED = "ai_assisted"


class FlagLevel(str, Enum):
    HIGH = "High"
    MODERATE = "Moderate"
    OK = "OK"


# Timeline
class Fixture(BaseModel):
    """Fixture after field-name normalisation."""

    date: dt.date
    opponent: str = "Opponent"
    is_home: bool = False
    competition: str = ""
    notes: str = ""
    importance_weight: float = 1.0
    match_number: int | None = None
    raw: dict[str, Any] = Field(default_factory=dict)


class TimelineDay(BaseModel):
    """One calendar day of the plan horizon."""

    date: dt.date
    day_index: int = Field(ge=0)
    week_index: int = Field(ge=0)
    is_fixture: bool = False
    fixture: Fixture | None = None
    load_class: LoadClass | None = None
    md_label: str | None = None
    mesocycle_phase: MesocyclePhase | None = None
    color: str = PENDING_COLOR
    label: str = PENDING_LABEL
    ai_rationale: str | None = None


# Drill content
def _snake_case(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", value.strip().lower()).strip("_")


class DrillTemplate(BaseModel):
    """Read-only drill library entry."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    phase: PhaseType
    workload: Intensity = Intensity.MEDIUM
    category: str = ""
    tags: list[str] = Field(default_factory=list)
    objective_primary: str = Field(min_length=1)
    objectives_secondary: list[str] = Field(default_factory=list)
    duration_min: int = Field(ge=1)
    duration_max: int = Field(ge=1)
    equipment: list[str] = Field(default_factory=list)
    coaching_points: list[str] = Field(default_factory=list)
    constraints: list[str] = Field(default_factory=list)
    progressions: list[str] = Field(default_factory=list)
    regressions: list[str] = Field(default_factory=list)
    players: str = ""
    space: str = ""
    source_name: str = "Club library"
    quality_weight: float = Field(default=0.7, ge=0.0, le=1.0)
    last_reviewed: dt.datetime | None = None

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, value: list[str]) -> list[str]:
        return [tag for tag in (_snake_case(t) for t in value) if tag]

    @model_validator(mode="after")
    def check_duration_range(self) -> "DrillTemplate":
        if self.duration_min > self.duration_max:
            raise ValueError(
                f"duration_min ({self.duration_min}) exceeds duration_max ({self.duration_max})"
            )
        return self


class DrillSource(BaseModel):
    name: str
    quality_weight: float


class DrillInstance(BaseModel):
    """A drill placed into one phase of one session; never shared."""

    id: str
    name: str
    duration: int
    load: Intensity
    staff: str = "Coach"
    phase: str = ""
    category: str = ""
    tags: list[str] = Field(default_factory=list)
    objective: str = ""
    secondary_objectives: list[str] = Field(default_factory=list)
    equipment: list[str] = Field(default_factory=list)
    coaching_points: list[str] = Field(default_factory=list)
    constraints: list[str] = Field(default_factory=list)
    progressions: list[str] = Field(default_factory=list)
    regressions: list[str] = Field(default_factory=list)
    player_arrangement: str = ""
    space_dimensions: str = ""
    source: DrillSource | None = None
    generated: bool = False
    enriched_instructions: str = ""


# Sessions
class Phase(BaseModel):
    name: str
    focus: str
    target_intensity: Intensity
    phase_type: PhaseType
    duration: int = 0
    principles_applied: list[str] = Field(default_factory=list)
    rationale: str = ""
    equipment: list[str] = Field(default_factory=list)
    drills: list[DrillInstance] | None = None


class ComputedIntensity(BaseModel):
    average_score: float
    label: Intensity


class PrincipleCount(BaseModel):
    name: str
    count: int


class Session(BaseModel):
    """Training content for one timeline day."""

    name: str
    date: dt.date
    overall_load: LoadClass
    principles: str = ""
    principles_applied: list[str] = Field(default_factory=list)
    play_athletes: str = "Full squad"
    phases: list[Phase] = Field(default_factory=list)
    drills_generated: bool = False
    computed_intensity: ComputedIntensity | None = None
    principle_coverage_snapshot: list[PrincipleCount] = Field(default_factory=list)
    drill_warning: str | None = None
    drill_generation_at: dt.datetime | None = None
    user_renamed: bool = False
    regeneration_count: int = 0


# Analytics
class WeeklyMetricDay(BaseModel):
    date: dt.date
    load_class: LoadClass | None
    score: float


class WeeklyMetric(BaseModel):
    week_index: int
    days: list[WeeklyMetricDay] = Field(default_factory=list)
    total_load: float
    mean: float
    standard_deviation: float
    monotony: float
    strain: float
    flag_monotony: FlagLevel
    flag_strain: FlagLevel


class DrillRepeat(BaseModel):
    id: str
    name: str
    count: int


class PrincipleCoverage(BaseModel):
    name: str
    count: int
    pct: float


class PlanAnalytics(BaseModel):
    """Variety and coverage statistics for a (possibly partial) plan."""

    sessions: int
    sessions_with_drills: int
    drills: int
    total_duration_minutes: int
    unique_drills: int
    uniqueness_ratio: float
    uniqueness_pct: float
    uniqueness_label: str
    top_repeats: list[DrillRepeat] = Field(default_factory=list)
    load_distribution: dict[str, int] = Field(default_factory=dict)
    load_distribution_pct: dict[str, float] = Field(default_factory=dict)
    phase_type_frequency: dict[str, int] = Field(default_factory=dict)
    phase_evenness: float
    phase_evenness_label: str
    principle_coverage: list[PrincipleCoverage] = Field(default_factory=list)
    uncovered_principles: list[str] = Field(default_factory=list)
    intensity_session_counts: dict[str, int] = Field(default_factory=dict)


# Plan
class FocusPrinciples(BaseModel):
    attacking: list[str] = Field(default_factory=list)
    defending: list[str] = Field(default_factory=list)
    transition: list[str] = Field(default_factory=list)

    def names(self) -> list[str]:
        return [*self.attacking, *self.defending, *self.transition]


class PlanSettings(BaseModel):
    variability: Variability = Variability.MEDIUM
    objective: str = ""
    selected_principles: list[str] = Field(default_factory=list)
    generation_mode: GenerationMode = GenerationMode.CURATED
    load_assignment: LoadAssignmentMode = LoadAssignmentMode.DETERMINISTIC
    seed: int | None = None


class MatchSummary(BaseModel):
    date: dt.date
    opponent: str
    is_home: bool
    match_number: int | None
    importance_weight: float
    competition: str = ""


class TeamPlan(BaseModel):
    """Complete plan: timeline, sessions, weekly analytics and narrative."""

    team_id: str
    team: str
    summary: str
    summary_source: str = "fallback"
    principles: list[str] = Field(default_factory=list)
    focus_principles: FocusPrinciples = Field(default_factory=FocusPrinciples)
    timeline: list[TimelineDay] = Field(default_factory=list)
    sessions: list[Session] = Field(default_factory=list)
    matches: list[MatchSummary] = Field(default_factory=list)
    weekly_metrics: list[WeeklyMetric] = Field(default_factory=list)
    generated_at: dt.datetime
    weeks: int
    start_date: dt.date
    end_date: dt.date
    total_days: int
    warnings: list[str] = Field(default_factory=list)
    settings: PlanSettings = Field(default_factory=PlanSettings)
    load_assignment_source: LoadAssignmentMode = LoadAssignmentMode.DETERMINISTIC


class Team(BaseModel):
    id: str
    name: str
    fixtures: list[dict[str, Any]] = Field(default_factory=list)


class PlanOptions(BaseModel):
    """Caller options for high-level plan generation.

    Either ``weeks`` or ``end_date`` bounds the horizon; ``start_date`` defaults
    to today. When ``fixtures`` is omitted the team's own fixture list is used.
    """

    weeks: int | None = None
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    fixtures: list[dict[str, Any]] | None = None
    objective: str = ""
    selected_principles: list[str] = Field(default_factory=list)
    variability: Variability | None = None
    generation_mode: GenerationMode | None = None
    load_assignment: LoadAssignmentMode | None = None
    seed: int | None = None


# API payloads
class GeneratePlanRequest(PlanOptions):
    team_id: str
    title: str | None = Field(default=None, max_length=200)


class DayLoadUpdate(BaseModel):
    load_class: LoadClass


class SessionRename(BaseModel):
    name: str = Field(min_length=1, max_length=120)


class TitleUpdate(BaseModel):
    title: str = Field(min_length=1, max_length=200)


class PlanRecord(BaseModel):
    """Listing metadata for a stored plan."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    team_id: str
    team_name: str
    title: str
    start_date: dt.date
    end_date: dt.date
    duration_days: int
    created_at: dt.datetime
    updated_at: dt.datetime


class StoredPlanResponse(PlanRecord):
    plan: TeamPlan


class TeamResponse(BaseModel):
    id: str
    name: str
    fixture_count: int
