"""Team identifiers known to the routing core."""

from __future__ import annotations

from collections.abc import Iterable

from qrflow.errors import InvalidTeam
from qrflow.models.state import ORIGINATOR


class TeamRegistry:
    """Closed set of the originator team and the responding teams.

    Queries may only be directed at responding teams; any known team may
    raise or resolve them.
    """

    def __init__(self, originator_team: str, responding_teams: Iterable[str]):
        self.originator_team = originator_team
        self.responding_teams = frozenset(responding_teams)
        if not self.responding_teams:
            raise ValueError("At least one responding team is required")
        if originator_team in self.responding_teams or ORIGINATOR in self.responding_teams:
            raise ValueError("The originator cannot also be a responding team")

    def is_responding(self, team: str) -> bool:
        return team in self.responding_teams

    def is_known(self, team: str) -> bool:
        return team == self.originator_team or team in self.responding_teams

    def require_responding(self, team: str) -> str:
        if team == self.originator_team or team == ORIGINATOR:
            raise InvalidTeam(team, "queries cannot be assigned to the originator")
        if team not in self.responding_teams:
            raise InvalidTeam(team, f"not one of {sorted(self.responding_teams)}")
        return team

    def require_known(self, team: str) -> str:
        if not self.is_known(team):
            raise InvalidTeam(team, "unknown team")
        return team
