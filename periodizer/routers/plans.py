"""API endpoints for generating, editing and storing team plans."""
from __future__ import annotations

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session as DbSession

from periodizer.database import get_db
from periodizer.exceptions import PlanInputError, SessionIndexError, TeamNotFoundError
from periodizer.models.schemas import (
    DayLoadUpdate,
    GeneratePlanRequest,
    PlanAnalytics,
    PlanRecord,
    Session,
    SessionRename,
    StoredPlanResponse,
    TeamPlan,
    TitleUpdate,
    WeeklyMetric,
)
from periodizer.routers.teams import get_team_directory
from periodizer.services.plan_assembler import PlanAssembler, build_plan_assembler
from periodizer.services.plan_repository import PlanRepository
from periodizer.services.team_directory import TeamDirectory


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/plans", tags=["plans"])


def get_plan_assembler() -> PlanAssembler:
    """Fresh assembler per request; drill content is cached process-wide."""
    return build_plan_assembler()


def get_plan_repository(db: Annotated[DbSession, Depends(get_db)]) -> PlanRepository:
    return PlanRepository(db)


def _load_plan(repository: PlanRepository, plan_id: int) -> TeamPlan:
    plan = repository.get(plan_id)
    if plan is None:
        raise HTTPException(status_code=404, detail=f"Plan {plan_id} not found")
    return plan


def _stored(repository: PlanRepository, plan_id: int) -> StoredPlanResponse:
    record = repository.get_record(plan_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Plan {plan_id} not found")
    return record


@router.post("/generate", response_model=StoredPlanResponse, status_code=201)
async def generate_plan(
    request: GeneratePlanRequest,
    assembler: Annotated[PlanAssembler, Depends(get_plan_assembler)],
    repository: Annotated[PlanRepository, Depends(get_plan_repository)],
    teams: Annotated[TeamDirectory, Depends(get_team_directory)],
):
    """
    Generate a high-level plan (timeline, loads, session skeletons) and store it.

    Drills are not generated here; populate sessions with the drills endpoints.
    """
    try:
        team = teams.get(request.team_id)
        plan = await assembler.generate_high_level_plan(team, request)
        plan_id = repository.create(plan, request.title)
        return _stored(repository, plan_id)
    except HTTPException:
        raise
    except TeamNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PlanInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Failed to generate plan for team %s", request.team_id)
        raise HTTPException(status_code=500, detail=f"Failed to generate plan: {str(e)}")


@router.get("", response_model=list[PlanRecord])
async def list_plans(
    repository: Annotated[PlanRepository, Depends(get_plan_repository)],
    team_id: Optional[str] = None,
):
    """List stored plans, newest first, optionally for one team."""
    try:
        if team_id:
            return repository.list(team_id)
        return repository.list_all()
    except Exception as e:
        logger.exception("Failed to list plans")
        raise HTTPException(status_code=500, detail=f"Failed to list plans: {str(e)}")


@router.get("/{plan_id}", response_model=StoredPlanResponse)
async def get_plan(
    plan_id: int,
    repository: Annotated[PlanRepository, Depends(get_plan_repository)],
):
    try:
        return _stored(repository, plan_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Failed to load plan %d", plan_id)
        raise HTTPException(status_code=500, detail=f"Failed to load plan: {str(e)}")


@router.post("/{plan_id}/sessions/{session_index}/drills", response_model=Session)
async def generate_session_drills(
    plan_id: int,
    session_index: int,
    assembler: Annotated[PlanAssembler, Depends(get_plan_assembler)],
    repository: Annotated[PlanRepository, Depends(get_plan_repository)],
):
    """Populate one session with drills. Already populated sessions are returned as-is."""
    try:
        plan = _load_plan(repository, plan_id)
        session = await assembler.generate_session_drills(plan, session_index)
        repository.save(plan_id, plan)
        return session
    except HTTPException:
        raise
    except SessionIndexError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PlanInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Failed to generate drills for plan %d session %d", plan_id, session_index)
        raise HTTPException(status_code=500, detail=f"Failed to generate drills: {str(e)}")


@router.post("/{plan_id}/drills", response_model=StoredPlanResponse)
async def generate_all_drills(
    plan_id: int,
    assembler: Annotated[PlanAssembler, Depends(get_plan_assembler)],
    repository: Annotated[PlanRepository, Depends(get_plan_repository)],
):
    """Populate every session that has no drills yet, in date order."""
    try:
        plan = _load_plan(repository, plan_id)
        await assembler.generate_all_session_drills(plan)
        repository.save(plan_id, plan)
        return _stored(repository, plan_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Failed to generate drills for plan %d", plan_id)
        raise HTTPException(status_code=500, detail=f"Failed to generate drills: {str(e)}")


@router.post("/{plan_id}/sessions/{session_index}/regenerate", response_model=Session)
async def regenerate_session(
    plan_id: int,
    session_index: int,
    assembler: Annotated[PlanAssembler, Depends(get_plan_assembler)],
    repository: Annotated[PlanRepository, Depends(get_plan_repository)],
):
    """Discard a session's drills and select a fresh set."""
    try:
        plan = _load_plan(repository, plan_id)
        session = await assembler.regenerate_session(plan, session_index)
        repository.save(plan_id, plan)
        return session
    except HTTPException:
        raise
    except SessionIndexError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PlanInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Failed to regenerate plan %d session %d", plan_id, session_index)
        raise HTTPException(status_code=500, detail=f"Failed to regenerate session: {str(e)}")


@router.patch("/{plan_id}/days/{day_index}/load", response_model=StoredPlanResponse)
async def update_day_load(
    plan_id: int,
    day_index: int,
    update: DayLoadUpdate,
    assembler: Annotated[PlanAssembler, Depends(get_plan_assembler)],
    repository: Annotated[PlanRepository, Depends(get_plan_repository)],
):
    """
    Override one day's load class.

    The day's session is rebuilt without drills and weekly metrics are
    recomputed for the whole plan.
    """
    try:
        plan = _load_plan(repository, plan_id)
        assembler.update_day_load(plan, day_index, update.load_class)
        repository.save(plan_id, plan)
        return _stored(repository, plan_id)
    except HTTPException:
        raise
    except PlanInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Failed to update load for plan %d day %d", plan_id, day_index)
        raise HTTPException(status_code=500, detail=f"Failed to update day load: {str(e)}")


@router.patch("/{plan_id}/sessions/{session_index}/name", response_model=Session)
async def rename_session(
    plan_id: int,
    session_index: int,
    update: SessionRename,
    assembler: Annotated[PlanAssembler, Depends(get_plan_assembler)],
    repository: Annotated[PlanRepository, Depends(get_plan_repository)],
):
    try:
        plan = _load_plan(repository, plan_id)
        session = assembler.rename_session(plan, session_index, update.name)
        repository.save(plan_id, plan)
        return session
    except HTTPException:
        raise
    except SessionIndexError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PlanInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Failed to rename plan %d session %d", plan_id, session_index)
        raise HTTPException(status_code=500, detail=f"Failed to rename session: {str(e)}")


@router.patch("/{plan_id}/title", response_model=PlanRecord)
async def update_title(
    plan_id: int,
    update: TitleUpdate,
    repository: Annotated[PlanRepository, Depends(get_plan_repository)],
):
    try:
        if not repository.update_title(plan_id, update.title):
            raise HTTPException(status_code=404, detail=f"Plan {plan_id} not found")
        return _stored(repository, plan_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Failed to update title for plan %d", plan_id)
        raise HTTPException(status_code=500, detail=f"Failed to update title: {str(e)}")


@router.get("/{plan_id}/weekly-metrics", response_model=list[WeeklyMetric])
async def get_weekly_metrics(
    plan_id: int,
    assembler: Annotated[PlanAssembler, Depends(get_plan_assembler)],
    repository: Annotated[PlanRepository, Depends(get_plan_repository)],
):
    try:
        plan = _load_plan(repository, plan_id)
        return assembler.compute_weekly_metrics(plan)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Failed to compute weekly metrics for plan %d", plan_id)
        raise HTTPException(status_code=500, detail=f"Failed to compute weekly metrics: {str(e)}")


@router.get("/{plan_id}/analytics", response_model=PlanAnalytics)
async def get_plan_analytics(
    plan_id: int,
    assembler: Annotated[PlanAssembler, Depends(get_plan_assembler)],
    repository: Annotated[PlanRepository, Depends(get_plan_repository)],
):
    """Drill variety, load distribution and principle coverage for a plan."""
    try:
        plan = _load_plan(repository, plan_id)
        return assembler.compute_plan_analytics(plan)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Failed to compute analytics for plan %d", plan_id)
        raise HTTPException(status_code=500, detail=f"Failed to compute analytics: {str(e)}")


@router.delete("/{plan_id}")
async def delete_plan(
    plan_id: int,
    repository: Annotated[PlanRepository, Depends(get_plan_repository)],
) -> dict:
    try:
        if not repository.delete(plan_id):
            raise HTTPException(status_code=404, detail=f"Plan {plan_id} not found")
        return {"status": "deleted", "id": plan_id}
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Failed to delete plan %d", plan_id)
        raise HTTPException(status_code=500, detail=f"Failed to delete plan: {str(e)}")
