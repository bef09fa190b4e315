"""Events published to the notification and audit collaborators."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from qrflow.models.state import WorkflowState


class StateChangeEvent(BaseModel):
    review_item_id: str
    previous_state: WorkflowState
    new_state: WorkflowState
    triggered_by: str
    timestamp: datetime


class QueryResolvedEvent(BaseModel):
    query_id: int
    review_item_id: str
    resolved_by: str
    timestamp: datetime
