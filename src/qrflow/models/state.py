"""Workflow state and owner variants.

The state of a review item is a tagged variant rather than a free-form
string, so a ``Pending`` state always carries the team it is pending on and
no state can name a team that does not exist in the variant.

    ORIGINATOR_PENDING -> PENDING(team) -> ... -> ORIGINATOR_PENDING -> COMPLETED
"""

from __future__ import annotations

import enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


ORIGINATOR = "ORIGINATOR"


class StateKind(str, enum.Enum):
    ORIGINATOR_PENDING = "ORIGINATOR_PENDING"
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


class OriginatorOwner(BaseModel):
    """The originating team holds the item."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["ORIGINATOR"] = "ORIGINATOR"

    @property
    def label(self) -> str:
        return ORIGINATOR

    def __str__(self) -> str:
        return ORIGINATOR


class TeamOwner(BaseModel):
    """A responding team holds the item."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["TEAM"] = "TEAM"
    team: str = Field(min_length=1)

    @property
    def label(self) -> str:
        return self.team

    def __str__(self) -> str:
        return self.team


Owner = Annotated[Union[OriginatorOwner, TeamOwner], Field(discriminator="kind")]


class OriginatorPending(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["ORIGINATOR_PENDING"] = "ORIGINATOR_PENDING"

    @property
    def assigned_team(self) -> str | None:
        return None

    @property
    def owner(self) -> OriginatorOwner:
        return OriginatorOwner()

    def __str__(self) -> str:
        return StateKind.ORIGINATOR_PENDING.value


class Pending(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["PENDING"] = "PENDING"
    team: str = Field(min_length=1)

    @property
    def assigned_team(self) -> str | None:
        return self.team

    @property
    def owner(self) -> TeamOwner:
        return TeamOwner(team=self.team)

    def __str__(self) -> str:
        return f"{StateKind.PENDING.value}({self.team})"


class Completed(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["COMPLETED"] = "COMPLETED"

    @property
    def assigned_team(self) -> str | None:
        return None

    @property
    def owner(self) -> OriginatorOwner:
        # The originator closed the item; nobody else can act on it.
        return OriginatorOwner()

    def __str__(self) -> str:
        return StateKind.COMPLETED.value


WorkflowState = Annotated[Union[OriginatorPending, Pending, Completed], Field(discriminator="kind")]


def state_for_owner(owner: OriginatorOwner | TeamOwner) -> OriginatorPending | Pending:
    """Map a resolver result onto the state that denotes it."""
    match owner:
        case OriginatorOwner():
            return OriginatorPending()
        case TeamOwner(team=team):
            return Pending(team=team)
    raise TypeError(f"Unknown owner variant: {owner!r}")
