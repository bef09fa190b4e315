"""Models for blocking queries raised against review items."""

from __future__ import annotations

import enum
from datetime import datetime, timezone

from pydantic import BaseModel, Field


class QueryStatus(str, enum.Enum):
    OPEN = "OPEN"
    RESOLVED = "RESOLVED"


class QueryPriority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class Query(BaseModel):
    id: int
    review_item_id: str
    raised_by_team: str
    assigned_team: str
    question: str = ""
    status: QueryStatus = QueryStatus.OPEN
    created_at: datetime
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    resolution_text: str | None = None
    # Questionnaire context the query was raised from
    step_number: int | None = None
    field_name: str | None = None
    priority: QueryPriority = QueryPriority.MEDIUM
    category: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status == QueryStatus.OPEN

    @property
    def sort_key(self) -> tuple[datetime, int]:
        """Chronological-first ordering key; id breaks timestamp ties."""
        return (self.created_at, self.id)

    @property
    def is_high_priority(self) -> bool:
        return self.priority in (QueryPriority.HIGH, QueryPriority.URGENT)

    def days_open(self, now: datetime | None = None) -> int:
        end = self.resolved_at or now or datetime.now(timezone.utc)
        return max((end - self.created_at).days, 0)

    def is_overdue(self, overdue_days: int, now: datetime | None = None) -> bool:
        return self.is_open and self.days_open(now) > overdue_days


class QueryStats(BaseModel):
    team: str
    open: int = 0
    resolved: int = 0
    overdue: int = 0
    high_priority_open: int = 0


class BulkResolveResult(BaseModel):
    query_id: int
    resolved: bool
    error: str | None = None
    new_state: str | None = None
    details: dict = Field(default_factory=dict)
