"""Exception types raised by the planning engine."""
from __future__ import annotations


class PlanInputError(ValueError):
    """Caller supplied input the engine cannot plan with (bad range, bad index, ...)."""


class TeamNotFoundError(PlanInputError):
    """Requested team id is not known to the team directory."""

    def __init__(self, team_id: str) -> None:
        super().__init__(f"Team {team_id!r} not found")
        self.team_id = team_id


class SessionIndexError(PlanInputError):
    """Session index outside the plan's session list."""

    def __init__(self, index: int, total: int) -> None:
        super().__init__(f"Session index {index} out of range (plan has {total} sessions)")
        self.index = index
        self.total = total


class MalformedResponseError(ValueError):
    """Text-generation output could not be parsed into the expected JSON shape."""


class DrillLibraryError(ValueError):
    """A drill library file contains an invalid entry."""
