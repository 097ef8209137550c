"""Build the day-by-day plan horizon and normalise fixture feeds."""
from __future__ import annotations

import datetime as dt
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from periodizer.exceptions import PlanInputError
from periodizer.models.schemas import Fixture, TimelineDay

logger = logging.getLogger(__name__)

MAX_PLAN_DAYS = 42
DEFAULT_WEEKS = 5
IMPORTANCE_FLOOR = 0.6

_HOME_KEYS = ("home_team", "home", "host", "team_home")
_AWAY_KEYS = ("away_team", "away", "opponent", "team_away")
_COMPETITION_KEYS = ("competition", "comp", "competition_name")
_NOTES_KEYS = ("notes", "note")

_STAGE_RE = re.compile(r"semi|quarter|final", re.IGNORECASE)
_CUP_RE = re.compile(r"cup|champions|playoff|knockout", re.IGNORECASE)
_FRIENDLY_RE = re.compile(r"friendly|preseason", re.IGNORECASE)
_RIVALRY_RE = re.compile(r"relegation|derby|rival", re.IGNORECASE)
_ISO_DATE_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})")


@dataclass
class TimelineResult:
    days: list[TimelineDay]
    fixtures: list[Fixture]
    start_date: dt.date
    end_date: dt.date
    descriptor: str
    warnings: list[str] = field(default_factory=list)


def _first(raw: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


def fixture_date(value: Any) -> dt.date | None:
    """Reduce a date, datetime or ISO string to its literal calendar date.

    Time and timezone are discarded rather than converted so a kick-off at
    23:30 local time never drifts onto the next day.
    """
    if value is None:
        return None
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    text = str(value).strip()
    match = _ISO_DATE_RE.match(text)
    if match:
        try:
            return dt.date.fromisoformat(match.group(1))
        except ValueError:
            return None
    try:
        return dt.datetime.fromisoformat(text).date()
    except ValueError:
        return None


def importance_weight(competition: str, notes: str = "", floor: float = IMPORTANCE_FLOOR) -> float:
    """Heuristic match importance from competition stage/type and fixture notes."""

    score = 1.0
    if _STAGE_RE.search(competition or ""):
        score += 0.4
    if _CUP_RE.search(competition or ""):
        score += 0.3
    if _FRIENDLY_RE.search(competition or ""):
        score -= 0.3
    if _RIVALRY_RE.search(notes or ""):
        score += 0.2
    return round(max(score, floor), 2)


def normalize_fixture(
    raw: Mapping[str, Any],
    team_name: str,
    floor: float = IMPORTANCE_FLOOR,
) -> Fixture | None:
    """Map a fixture record with source-specific field names onto ``Fixture``.

    Returns None when the record has no usable date.
    """
    fixture_day = fixture_date(raw.get("date"))
    if fixture_day is None:
        logger.debug("Skipping fixture without a usable date: %s", raw)
        return None

    home = _first(raw, _HOME_KEYS)
    away = _first(raw, _AWAY_KEYS)
    is_home = bool(home and home == team_name) or raw.get("is_home") is True
    if home and away:
        opponent = away if is_home else home
    else:
        opponent = raw.get("opponent") or raw.get("away_team") or raw.get("away") or raw.get("home_team")
    opponent = str(opponent or "Opponent")

    competition = str(_first(raw, _COMPETITION_KEYS) or "")
    notes = str(_first(raw, _NOTES_KEYS) or "")
    return Fixture(
        date=fixture_day,
        opponent=opponent,
        is_home=is_home,
        competition=competition,
        notes=notes,
        importance_weight=importance_weight(competition, notes, floor),
        raw=dict(raw),
    )


def fixture_label(fixture: Fixture) -> str:
    competition = fixture.competition
    if len(competition) > 18:
        competition = "".join(word[0] for word in competition.split() if word).upper()
    suffix = f" ({competition})" if competition else ""
    return f"Match vs {fixture.opponent}{suffix}"


def _resolve_range(
    weeks: int | None,
    start_date: dt.date | None,
    end_date: dt.date | None,
    max_days: int,
) -> tuple[dt.date, int, str, list[str]]:
    start = start_date or dt.date.today()
    warnings: list[str] = []

    if end_date is not None:
        if end_date < start:
            raise PlanInputError(f"end_date {end_date} is before start_date {start}")
        requested = (end_date - start).days + 1
        descriptor_unit = "day"
    else:
        weeks = DEFAULT_WEEKS if weeks is None else weeks
        if weeks < 1:
            raise PlanInputError(f"weeks must be at least 1 (got {weeks})")
        requested = weeks * 7
        descriptor_unit = "week"

    total = min(requested, max_days)
    if requested > max_days:
        last = start + dt.timedelta(days=total - 1)
        warnings.append(
            f"Requested {requested} days exceeds the {max_days}-day planning horizon; "
            f"plan truncated to {start.isoformat()} through {last.isoformat()}."
        )
        logger.warning("Plan horizon truncated from %d to %d days", requested, total)

    if descriptor_unit == "week":
        descriptor = f"{total // 7}-week" if total % 7 == 0 else f"{total}-day"
    else:
        descriptor = f"{total}-day"
    return start, total, descriptor, warnings


def build_timeline(
    team_name: str,
    fixtures: Iterable[Mapping[str, Any]] | None,
    *,
    weeks: int | None = None,
    start_date: dt.date | None = None,
    end_date: dt.date | None = None,
    max_days: int = MAX_PLAN_DAYS,
    importance_floor: float = IMPORTANCE_FLOOR,
) -> TimelineResult:
    """Create one ``TimelineDay`` per calendar day and attach in-range fixtures.

    Args:
        team_name: Name used to decide home/away for each fixture.
        fixtures: Raw fixture records in any of the supported field layouts.
        weeks: Horizon in weeks; ignored when ``end_date`` is given.
        start_date: First day of the plan (defaults to today).
        end_date: Last day of the plan, inclusive.
        max_days: Hard cap on the horizon; longer requests are truncated.

    Returns:
        TimelineResult with the days, the matched fixtures in chronological
        order and any truncation warning.

    Raises:
        PlanInputError: The range is empty or inverted.
    """
    max_days = min(max_days, MAX_PLAN_DAYS)
    start, total_days, descriptor, warnings = _resolve_range(weeks, start_date, end_date, max_days)
    end = start + dt.timedelta(days=total_days - 1)

    by_date: dict[dt.date, Fixture] = {}
    for raw in fixtures or []:
        if not isinstance(raw, Mapping):
            continue
        fixture = normalize_fixture(raw, team_name, importance_floor)
        if fixture is None or not (start <= fixture.date <= end):
            continue
        if fixture.date in by_date:
            logger.info("Ignoring second fixture on %s (vs %s)", fixture.date, fixture.opponent)
            continue
        by_date[fixture.date] = fixture

    matched: list[Fixture] = []
    for number, fixture_day in enumerate(sorted(by_date), start=1):
        fixture = by_date[fixture_day].model_copy(update={"match_number": number})
        by_date[fixture_day] = fixture
        matched.append(fixture)

    days: list[TimelineDay] = []
    for offset in range(total_days):
        current = start + dt.timedelta(days=offset)
        fixture = by_date.get(current)
        day = TimelineDay(
            date=current,
            day_index=offset,
            week_index=offset // 7,
            is_fixture=fixture is not None,
            fixture=fixture,
        )
        if fixture is not None:
            day.color = "purple"
            day.label = fixture_label(fixture)
        days.append(day)

    logger.info(
        "Built timeline for %s: %d days (%s to %s), %d fixtures",
        team_name,
        total_days,
        start.isoformat(),
        end.isoformat(),
        len(matched),
    )
    return TimelineResult(
        days=days,
        fixtures=matched,
        start_date=start,
        end_date=end,
        descriptor=descriptor,
        warnings=warnings,
    )
