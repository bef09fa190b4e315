"""Models for review items routed between teams."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from qrflow.models.queries import Query
from qrflow.models.state import OriginatorPending, WorkflowState


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReviewItem(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    state: WorkflowState = Field(default_factory=OriginatorPending)
    version: int = 0
    project_code: str
    material_code: str
    plant_code: str
    material_name: str | None = None
    initiated_by: str
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime | None = None
    completed_by: str | None = None

    @property
    def assigned_team(self) -> str | None:
        return self.state.assigned_team

    @property
    def subject_key(self) -> tuple[str, str, str]:
        return (self.project_code, self.material_code, self.plant_code)


class ResolveOutcome(BaseModel):
    """Result of resolving one query."""

    review_item_id: str
    previous_state: WorkflowState
    new_state: WorkflowState
    query: Query

    @property
    def changed(self) -> bool:
        return self.previous_state != self.new_state


class RaiseOutcome(ResolveOutcome):
    """Result of raising one query."""
