"""Request and response bodies for the HTTP boundary."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from qrflow.models.queries import Query, QueryPriority, QueryStatus
from qrflow.models.review import ReviewItem


class CreateReviewItemRequest(BaseModel):
    project_code: str = Field(min_length=1)
    material_code: str = Field(min_length=1)
    plant_code: str = Field(min_length=1)
    material_name: str | None = None
    initiated_by: str = Field(min_length=1)


class ReviewItemResponse(BaseModel):
    id: str
    state: str
    owner: str
    assigned_team: str | None
    version: int
    project_code: str
    material_code: str
    plant_code: str
    material_name: str | None = None
    initiated_by: str
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None
    completed_by: str | None = None

    @classmethod
    def from_item(cls, item: ReviewItem) -> "ReviewItemResponse":
        return cls(
            id=item.id,
            state=str(item.state),
            owner=item.state.owner.label,
            assigned_team=item.assigned_team,
            version=item.version,
            project_code=item.project_code,
            material_code=item.material_code,
            plant_code=item.plant_code,
            material_name=item.material_name,
            initiated_by=item.initiated_by,
            created_at=item.created_at,
            updated_at=item.updated_at,
            completed_at=item.completed_at,
            completed_by=item.completed_by,
        )


class RaiseQueryRequest(BaseModel):
    raised_by_team: str = Field(min_length=1)
    assigned_team: str = Field(min_length=1)
    text: str = Field(min_length=1)
    step_number: int | None = None
    field_name: str | None = None
    priority: QueryPriority = QueryPriority.MEDIUM
    category: str | None = None


class RaiseQueryResponse(BaseModel):
    query_id: int
    review_item_id: str
    state: str


class ResolveQueryRequest(BaseModel):
    resolved_by_team: str = Field(min_length=1)
    resolution_text: str = ""


class ResolveQueryResponse(BaseModel):
    review_item_id: str
    previous_state: str
    new_state: str
    owner: str


class BulkResolveRequest(BaseModel):
    query_ids: list[int] = Field(min_length=1)
    resolved_by_team: str = Field(min_length=1)
    resolution_text: str = ""


class CompleteReviewRequest(BaseModel):
    completed_by: str = Field(min_length=1)


class CompleteReviewResponse(BaseModel):
    review_item_id: str
    new_state: str


class OwnerResponse(BaseModel):
    review_item_id: str
    owner: str


class AssignQueryRequest(BaseModel):
    team: str = Field(min_length=1)
    updated_by: str = Field(min_length=1)


class UpdatePriorityRequest(BaseModel):
    priority: QueryPriority
    updated_by: str = Field(min_length=1)


class OpenQueryEntry(BaseModel):
    query_id: int
    assigned_team: str
    created_at: datetime


class QueryResponse(BaseModel):
    query_id: int
    review_item_id: str
    raised_by_team: str
    assigned_team: str
    question: str
    status: QueryStatus
    priority: QueryPriority
    category: str | None = None
    step_number: int | None = None
    field_name: str | None = None
    created_at: datetime
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    resolution_text: str | None = None
    days_open: int
    is_overdue: bool
    is_high_priority: bool

    @classmethod
    def from_query(cls, query: Query, overdue_days: int, now: datetime | None = None) -> "QueryResponse":
        return cls(
            query_id=query.id,
            review_item_id=query.review_item_id,
            raised_by_team=query.raised_by_team,
            assigned_team=query.assigned_team,
            question=query.question,
            status=query.status,
            priority=query.priority,
            category=query.category,
            step_number=query.step_number,
            field_name=query.field_name,
            created_at=query.created_at,
            resolved_at=query.resolved_at,
            resolved_by=query.resolved_by,
            resolution_text=query.resolution_text,
            days_open=query.days_open(now),
            is_overdue=query.is_overdue(overdue_days, now),
            is_high_priority=query.is_high_priority,
        )
