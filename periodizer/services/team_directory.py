"""Team and fixture lookup backed by a YAML file."""
from __future__ import annotations

import logging
from pathlib import Path

import yaml

from periodizer.config import DATA_DIR
from periodizer.exceptions import TeamNotFoundError
from periodizer.models.schemas import Team

logger = logging.getLogger(__name__)


class TeamDirectory:
    """Read-only registry of teams and their raw fixture lists."""

    def __init__(self, teams: list[Team] | None = None) -> None:
        self._teams: dict[str, Team] = {team.id: team for team in teams or []}

    @classmethod
    def load(cls, path: str | Path | None = None) -> "TeamDirectory":
        path = Path(path) if path else DATA_DIR / "teams.yaml"
        if not path.exists():
            logger.warning("Team file %s not found; directory is empty", path)
            return cls()
        with path.open("r", encoding="utf-8") as fh:
            payload = yaml.safe_load(fh) or {}
        teams = [Team.model_validate(item) for item in payload.get("teams", []) or []]
        logger.info("Loaded %d teams from %s", len(teams), path)
        return cls(teams)

    def list(self) -> list[Team]:
        return list(self._teams.values())

    def get(self, team_id: str) -> Team:
        try:
            return self._teams[team_id]
        except KeyError:
            raise TeamNotFoundError(team_id) from None

    def __contains__(self, team_id: object) -> bool:
        return team_id in self._teams
