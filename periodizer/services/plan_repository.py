"""Persistence of team plans as JSON documents with denormalised listing columns."""
from __future__ import annotations

import logging
import re
from typing import List, Optional

from sqlalchemy.orm import Session

from periodizer.models.database_models import TrainingPlan
from periodizer.models.schemas import PlanRecord, StoredPlanResponse, TeamPlan

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Training Plan"
TITLE_MAX_LENGTH = 50

_SENTENCE_END_RE = re.compile(r"(?<=[.!?])\s")


def derive_title(plan: TeamPlan) -> str:
    """First sentence of the summary (its first 50 characters plus "..." when longer), or a generic title."""

    summary = (plan.summary or "").strip()
    if not summary:
        return DEFAULT_TITLE
    first = _SENTENCE_END_RE.split(summary, maxsplit=1)[0].strip()
    if not first:
        return DEFAULT_TITLE
    if len(first) > TITLE_MAX_LENGTH:
        return first[:TITLE_MAX_LENGTH] + "..."
    return first


class PlanRepository:
    """CRUD over the ``training_plans`` table."""

    def __init__(self, db: Session):
        self.db = db

    def _apply_plan(self, row: TrainingPlan, plan: TeamPlan) -> None:
        row.team_id = plan.team_id
        row.team_name = plan.team
        row.start_date = plan.start_date
        row.end_date = plan.end_date
        row.duration_days = plan.total_days
        row.plan = plan.model_dump(mode="json")

    def _row(self, plan_id: int) -> Optional[TrainingPlan]:
        return self.db.query(TrainingPlan).filter(TrainingPlan.id == plan_id).first()

    def create(self, plan: TeamPlan, title: Optional[str] = None) -> int:
        row = TrainingPlan(title=(title or "").strip() or derive_title(plan))
        self._apply_plan(row, plan)
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        logger.info("Stored plan %d for team %s (%s)", row.id, plan.team_id, row.title)
        return row.id

    def list(self, team_id: str) -> List[PlanRecord]:
        rows = (
            self.db.query(TrainingPlan)
            .filter(TrainingPlan.team_id == team_id)
            .order_by(TrainingPlan.created_at.desc(), TrainingPlan.id.desc())
            .all()
        )
        return [PlanRecord.model_validate(row) for row in rows]

    def list_all(self) -> List[PlanRecord]:
        rows = (
            self.db.query(TrainingPlan)
            .order_by(TrainingPlan.created_at.desc(), TrainingPlan.id.desc())
            .all()
        )
        return [PlanRecord.model_validate(row) for row in rows]

    def get(self, plan_id: int) -> Optional[TeamPlan]:
        row = self._row(plan_id)
        if row is None:
            return None
        return TeamPlan.model_validate(row.plan)

    def get_record(self, plan_id: int) -> Optional[StoredPlanResponse]:
        row = self._row(plan_id)
        if row is None:
            return None
        record = PlanRecord.model_validate(row)
        return StoredPlanResponse(**record.model_dump(), plan=TeamPlan.model_validate(row.plan))

    def save(self, plan_id: int, plan: TeamPlan) -> bool:
        """Replace the stored document; False when the id is unknown."""
        row = self._row(plan_id)
        if row is None:
            return False
        self._apply_plan(row, plan)
        self.db.commit()
        logger.debug("Saved plan %d", plan_id)
        return True

    def update_title(self, plan_id: int, title: str) -> bool:
        row = self._row(plan_id)
        if row is None:
            return False
        row.title = title.strip() or derive_title(TeamPlan.model_validate(row.plan))
        self.db.commit()
        return True

    def delete(self, plan_id: int) -> bool:
        row = self._row(plan_id)
        if row is None:
            return False
        self.db.delete(row)
        self.db.commit()
        logger.info("Deleted plan %d", plan_id)
        return True
