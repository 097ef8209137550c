"""API endpoints for the team directory."""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from periodizer.config import get_settings
from periodizer.exceptions import TeamNotFoundError
from periodizer.models.schemas import Team, TeamResponse
from periodizer.services.team_directory import TeamDirectory


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/teams", tags=["teams"])


@lru_cache()
def get_team_directory() -> TeamDirectory:
    return TeamDirectory.load(get_settings().data_dir / "teams.yaml")


@router.get("", response_model=list[TeamResponse])
async def list_teams(teams: Annotated[TeamDirectory, Depends(get_team_directory)]):
    return [
        TeamResponse(id=team.id, name=team.name, fixture_count=len(team.fixtures))
        for team in teams.list()
    ]


@router.get("/{team_id}", response_model=Team)
async def get_team(team_id: str, teams: Annotated[TeamDirectory, Depends(get_team_directory)]):
    """Team with its raw fixture list."""
    try:
        return teams.get(team_id)
    except TeamNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
