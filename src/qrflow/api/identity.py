"""Acting-team identity for the HTTP layer.

The core trusts the team names it is given. This layer checks that a caller
who identifies as a team only acts as that team.
"""

from __future__ import annotations

from typing import Protocol

from fastapi import Depends, HTTPException, Request

TEAM_HEADER = "X-Team"


class IdentityProvider(Protocol):
    def current_team_of(self, request: Request) -> str | None: ...


class HeaderIdentityProvider:
    """Reads the acting team from a request header set by the auth proxy."""

    def __init__(self, header: str = TEAM_HEADER):
        self.header = header

    def current_team_of(self, request: Request) -> str | None:
        team = request.headers.get(self.header)
        return team.strip() if team and team.strip() else None


_provider: IdentityProvider = HeaderIdentityProvider()


def get_identity_provider() -> IdentityProvider:
    return _provider


def current_team(
    request: Request, provider: IdentityProvider = Depends(get_identity_provider)
) -> str | None:
    return provider.current_team_of(request)


def ensure_acting_as(acting_team: str | None, claimed_team: str) -> None:
    """Reject requests that claim a team other than the caller's own."""
    if acting_team is not None and acting_team != claimed_team:
        raise HTTPException(
            status_code=403,
            detail=f"Caller acts for {acting_team} but request names {claimed_team}",
        )
