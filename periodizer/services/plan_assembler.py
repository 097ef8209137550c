"""High-level plan generation, lazy drill population and coach overrides."""
from __future__ import annotations

import datetime as dt
import logging
import random
from functools import lru_cache
from pathlib import Path

from periodizer.config import Settings, get_settings
from periodizer.exceptions import PlanInputError, SessionIndexError
from periodizer.models.drill_library import DrillLibrary
from periodizer.models.load_taxonomy import LoadClass
from periodizer.models.principles import PrinciplesCatalog
from periodizer.models.schemas import (
    FlagLevel,
    GenerationMode,
    LoadAssignmentMode,
    MatchSummary,
    PlanAnalytics,
    PlanOptions,
    PlanSettings,
    Session,
    Team,
    TeamPlan,
    Variability,
    WeeklyMetric,
)
from periodizer.services import plan_analytics
from periodizer.services.drill_generation import build_generation_strategy
from periodizer.services.drill_selector import DrillSelector, PlanUsageState
from periodizer.services.periodization import (
    AIAssistedLoadAssigner,
    DeterministicLoadAssigner,
    LoadAssignmentStrategy,
    apply_load,
)
from periodizer.services.plan_narrative import build_plan_narrative
from periodizer.services.session_skeleton import derive_session_skeleton
from periodizer.services.text_generation import TextGenerator, build_text_generator
from periodizer.services.timeline_builder import build_timeline
from periodizer.services.weekly_metrics import MetricThresholds, compute_weekly_metrics

logger = logging.getLogger(__name__)

MONOTONY_WARNING = (
    "High weekly monotony detected - consider inserting an additional variation or recovery day."
)


def build_load_strategy(
    mode: LoadAssignmentMode,
    generator: TextGenerator | None,
    taper_threshold: float,
) -> LoadAssignmentStrategy:
    deterministic = DeterministicLoadAssigner(taper_threshold)
    if mode == LoadAssignmentMode.AI_ASSISTED:
        return AIAssistedLoadAssigner(generator, fallback=deterministic)
    return deterministic


class PlanAssembler:
    """Orchestrates the engine for one team plan at a time.

    High-level generation produces the timeline, loads, weekly metrics and
    drill-less session skeletons. Drills are filled in later, one session at a
    time, against a usage state rebuilt from the plan's generated sessions.
    """

    def __init__(
        self,
        library: DrillLibrary,
        catalog: PrinciplesCatalog,
        generator: TextGenerator | None = None,
        rng: random.Random | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.library = library
        self.catalog = catalog
        self.generator = generator
        self.settings = settings or get_settings()
        self._rng = rng

    # Randomness
    def _plan_rng(self, seed: int | None) -> random.Random:
        if self._rng is not None:
            return self._rng
        return random.Random(seed)

    def _session_rng(self, plan: TeamPlan, session_index: int, stream: str = "") -> random.Random:
        """Per-session generator; reproducible for seeded plans, per regeneration."""
        if self._rng is not None:
            return self._rng
        seed = plan.settings.seed
        if seed is None:
            return random.Random()
        regeneration = 0
        if session_index < len(plan.sessions):
            regeneration = plan.sessions[session_index].regeneration_count
        key = f"{seed}:{session_index}:{regeneration}"
        return random.Random(f"{key}:{stream}" if stream else key)

    def _thresholds(self) -> MetricThresholds:
        return MetricThresholds(
            monotony_high=self.settings.monotony_high,
            monotony_moderate=self.settings.monotony_moderate,
            strain_high=self.settings.strain_high,
            strain_moderate=self.settings.strain_moderate,
        )

    def _plan_settings(self, options: PlanOptions) -> PlanSettings:
        return PlanSettings(
            variability=options.variability or Variability(self.settings.default_variability),
            objective=options.objective.strip(),
            selected_principles=list(options.selected_principles),
            generation_mode=options.generation_mode or GenerationMode(self.settings.default_generation_mode),
            load_assignment=options.load_assignment
            or LoadAssignmentMode(self.settings.default_load_assignment),
            seed=options.seed,
        )

    # High-level plan
    async def generate_high_level_plan(self, team: Team | None, options: PlanOptions | None = None) -> TeamPlan:
        """Build timeline, loads, weekly metrics and session skeletons (no drills).

        Raises:
            PlanInputError: Missing team or malformed date range.
        """
        if team is None or not team.name:
            raise PlanInputError("A team is required to generate a plan")
        options = options or PlanOptions()
        plan_settings = self._plan_settings(options)
        rng = self._plan_rng(plan_settings.seed)

        weeks = options.weeks
        if weeks is None and options.end_date is None:
            weeks = self.settings.default_weeks
        raw_fixtures = options.fixtures if options.fixtures is not None else team.fixtures
        timeline = build_timeline(
            team.name,
            raw_fixtures,
            weeks=weeks,
            start_date=options.start_date,
            end_date=options.end_date,
            max_days=self.settings.max_plan_days,
            importance_floor=self.settings.importance_floor,
        )
        warnings = list(timeline.warnings)

        focus = self.catalog.resolve_focus(plan_settings.selected_principles)

        strategy = build_load_strategy(
            plan_settings.load_assignment,
            self.generator,
            self.settings.taper_importance_threshold,
        )
        assignment = await strategy.assign(
            timeline.days,
            objective=plan_settings.objective,
            focus_principles=focus.names(),
        )
        warnings.extend(assignment.warnings)

        weekly = compute_weekly_metrics(timeline.days, self._thresholds())
        sessions = [derive_session_skeleton(day, rng, self.catalog) for day in timeline.days]

        narrative = await build_plan_narrative(
            self.generator,
            team.name,
            timeline.fixtures,
            timeline.descriptor,
            timeline.days,
            plan_settings.objective,
            self.catalog,
        )

        plan = TeamPlan(
            team_id=team.id,
            team=team.name,
            summary=narrative.summary,
            summary_source=narrative.source,
            principles=narrative.principles,
            focus_principles=focus,
            timeline=timeline.days,
            sessions=sessions,
            matches=[
                MatchSummary(
                    date=f.date,
                    opponent=f.opponent,
                    is_home=f.is_home,
                    match_number=f.match_number,
                    importance_weight=f.importance_weight,
                    competition=f.competition,
                )
                for f in timeline.fixtures
            ],
            weekly_metrics=weekly,
            generated_at=dt.datetime.now(dt.timezone.utc),
            weeks=len({d.week_index for d in timeline.days}),
            start_date=timeline.start_date,
            end_date=timeline.end_date,
            total_days=len(timeline.days),
            warnings=warnings,
            settings=plan_settings,
            load_assignment_source=assignment.source,
        )
        self._sync_monotony_warning(plan)

        logger.info(
            "Generated %s plan for %s: %d days, %d matches, load source %s",
            timeline.descriptor,
            team.name,
            plan.total_days,
            len(plan.matches),
            assignment.source.value,
        )
        return plan

    # Drills
    def _check_session_index(self, plan: TeamPlan, session_index: int) -> Session:
        if not 0 <= session_index < len(plan.sessions):
            raise SessionIndexError(session_index, len(plan.sessions))
        return plan.sessions[session_index]

    async def generate_session_drills(
        self,
        plan: TeamPlan,
        session_index: int,
        usage: PlanUsageState | None = None,
    ) -> Session:
        """Populate one session; a session that already has drills is returned unchanged."""

        session = self._check_session_index(plan, session_index)
        if session.drills_generated:
            return session

        focus = plan.focus_principles
        usage = usage or PlanUsageState.from_plan(plan.sessions, session_index, focus.names())
        selector = DrillSelector(
            self.library,
            rng=self._session_rng(plan, session_index),
            variability=plan.settings.variability,
        )
        strategy = build_generation_strategy(plan.settings.generation_mode, selector, self.generator)
        day = plan.timeline[session_index] if session_index < len(plan.timeline) else None

        await strategy.populate(session, session_index, focus, usage, day)

        if session.drill_warning:
            message = f"{session.date.isoformat()}: {session.drill_warning}"
            if message not in plan.warnings:
                plan.warnings.append(message)
        logger.info(
            "Generated drills for session %d (%s, %s mode)",
            session_index,
            session.date.isoformat(),
            strategy.mode.value,
        )
        return session

    async def generate_all_session_drills(self, plan: TeamPlan) -> TeamPlan:
        """Populate every remaining session in chronological order."""

        usage: PlanUsageState | None = None
        focus_names = plan.focus_principles.names()
        for index, session in enumerate(plan.sessions):
            if session.drills_generated:
                # History now includes a session this state has not seen.
                usage = None
                continue
            if usage is None:
                usage = PlanUsageState.from_plan(plan.sessions, index, focus_names)
            await self.generate_session_drills(plan, index, usage)
        return plan

    async def regenerate_session(self, plan: TeamPlan, session_index: int) -> Session:
        """Discard a session's drills and select them again."""

        session = self._check_session_index(plan, session_index)
        _clear_drills(session)
        _drop_session_warnings(plan, session)
        session.regeneration_count += 1
        logger.info("Regenerating session %d (attempt %d)", session_index, session.regeneration_count)
        return await self.generate_session_drills(plan, session_index)

    # Overrides
    def update_day_load(self, plan: TeamPlan, day_index: int, load_class: LoadClass | str) -> TeamPlan:
        """Override a day's load; its session is re-derived and loses its drills.

        Raises:
            PlanInputError: Unknown day, unknown load class, or a change that
                would turn a fixture into a training day (or the reverse).
        """
        if not 0 <= day_index < len(plan.timeline):
            raise PlanInputError(f"Day index {day_index} out of range (plan has {len(plan.timeline)} days)")
        try:
            load = LoadClass(load_class)
        except ValueError:
            raise PlanInputError(f"Unknown load class {load_class!r}") from None

        day = plan.timeline[day_index]
        if day.is_fixture and load != LoadClass.MATCH:
            raise PlanInputError(f"Day {day_index} is a fixture and must stay a Match day")
        if not day.is_fixture and load == LoadClass.MATCH:
            raise PlanInputError(f"Day {day_index} has no fixture and cannot be a Match day")

        apply_load(day, load)
        day.ai_rationale = None

        old = plan.sessions[day_index] if day_index < len(plan.sessions) else None
        rng = self._session_rng(plan, day_index, stream="skeleton")
        session = derive_session_skeleton(day, rng, self.catalog)
        if old is not None:
            if old.user_renamed:
                session.name = old.name
                session.user_renamed = True
            session.regeneration_count = old.regeneration_count
            _drop_session_warnings(plan, old)
            plan.sessions[day_index] = session

        self.compute_weekly_metrics(plan)
        logger.info("Day %d load set to %s; session drills invalidated", day_index, load.value)
        return plan

    def rename_session(self, plan: TeamPlan, session_index: int, name: str) -> Session:
        session = self._check_session_index(plan, session_index)
        name = (name or "").strip()
        if not name:
            raise PlanInputError("Session name must not be empty")
        session.name = name
        session.user_renamed = True
        return session

    # Analytics
    def compute_weekly_metrics(self, plan: TeamPlan) -> list[WeeklyMetric]:
        plan.weekly_metrics = compute_weekly_metrics(plan.timeline, self._thresholds())
        self._sync_monotony_warning(plan)
        return plan.weekly_metrics

    def compute_plan_analytics(self, plan: TeamPlan) -> PlanAnalytics:
        return plan_analytics.compute_plan_analytics(plan)

    @staticmethod
    def _sync_monotony_warning(plan: TeamPlan) -> None:
        high = any(m.flag_monotony == FlagLevel.HIGH for m in plan.weekly_metrics)
        if high and MONOTONY_WARNING not in plan.warnings:
            plan.warnings.append(MONOTONY_WARNING)
        elif not high and MONOTONY_WARNING in plan.warnings:
            plan.warnings.remove(MONOTONY_WARNING)


def _clear_drills(session: Session) -> None:
    for phase in session.phases:
        phase.drills = None
        phase.duration = 0
        phase.principles_applied = []
        phase.rationale = ""
        phase.equipment = []
    session.drills_generated = False
    session.computed_intensity = None
    session.principle_coverage_snapshot = []
    session.drill_warning = None
    session.drill_generation_at = None


@lru_cache()
def load_content(data_dir: Path) -> tuple[DrillLibrary, PrinciplesCatalog]:
    """Drill library and principles catalogue for a data directory, loaded once."""

    library = DrillLibrary.load(data_dir / "drills.yaml", data_dir / "legacy_drills.yaml")
    catalog = PrinciplesCatalog.load(data_dir / "principles.yaml")
    return library, catalog


def build_plan_assembler(
    settings: Settings | None = None,
    generator: TextGenerator | None = None,
    rng: random.Random | None = None,
) -> PlanAssembler:
    """Assemble the engine from the configured data directory and API key."""

    settings = settings or get_settings()
    library, catalog = load_content(Path(settings.data_dir))
    if generator is None:
        generator = build_text_generator(settings)
    return PlanAssembler(library, catalog, generator=generator, rng=rng, settings=settings)


def _drop_session_warnings(plan: TeamPlan, session: Session) -> None:
    prefix = f"{session.date.isoformat()}: "
    plan.warnings = [w for w in plan.warnings if not w.startswith(prefix)]
