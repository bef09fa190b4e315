"""Typed failures raised by the routing core.

Every error carries a stable ``code`` plus the structured fields the HTTP
layer needs to build an actionable response. The core never attaches
presentation text beyond a short exception message.
"""

from __future__ import annotations

from typing import Any


class WorkflowError(Exception):
    """Base class for all routing-core failures."""

    code = "workflow_error"

    def details(self) -> dict[str, Any]:
        return {}


class InvalidTransition(WorkflowError):
    """Raised when the state machine rejects a requested state change."""

    code = "invalid_transition"

    def __init__(self, from_state: Any, to_state: Any, reason: str = ""):
        super().__init__(f"Invalid transition: {from_state} -> {to_state}" + (f" ({reason})" if reason else ""))
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason

    def details(self) -> dict[str, Any]:
        return {"from": str(self.from_state), "to": str(self.to_state), "reason": self.reason}


class QueryAlreadyResolved(WorkflowError):
    code = "query_already_resolved"

    def __init__(self, query_id: int):
        super().__init__(f"Query {query_id} is already resolved")
        self.query_id = query_id

    def details(self) -> dict[str, Any]:
        return {"query_id": self.query_id}


class ReviewItemNotFound(WorkflowError):
    code = "review_item_not_found"

    def __init__(self, review_item_id: str):
        super().__init__(f"Review item {review_item_id} not found")
        self.review_item_id = review_item_id

    def details(self) -> dict[str, Any]:
        return {"review_item_id": self.review_item_id}


class QueryNotFound(WorkflowError):
    code = "query_not_found"

    def __init__(self, query_id: int):
        super().__init__(f"Query {query_id} not found")
        self.query_id = query_id

    def details(self) -> dict[str, Any]:
        return {"query_id": self.query_id}


class AlreadyCompleted(WorkflowError):
    code = "already_completed"

    def __init__(self, review_item_id: str):
        super().__init__(f"Review item {review_item_id} is already completed")
        self.review_item_id = review_item_id

    def details(self) -> dict[str, Any]:
        return {"review_item_id": self.review_item_id}


class ConcurrentModification(WorkflowError):
    """The per-item critical section could not be acquired or committed.

    Callers retry the whole operation so the resolver runs against fresh state.
    """

    code = "concurrent_modification"

    def __init__(self, review_item_id: str, reason: str = ""):
        super().__init__(f"Concurrent modification of review item {review_item_id}" + (f": {reason}" if reason else ""))
        self.review_item_id = review_item_id
        self.reason = reason

    def details(self) -> dict[str, Any]:
        return {"review_item_id": self.review_item_id, "reason": self.reason}


class InvalidTeam(WorkflowError):
    code = "invalid_team"

    def __init__(self, team: str, reason: str):
        super().__init__(f"Invalid team {team!r}: {reason}")
        self.team = team
        self.reason = reason

    def details(self) -> dict[str, Any]:
        return {"team": self.team, "reason": self.reason}


class DuplicateReviewItem(WorkflowError):
    code = "duplicate_review_item"

    def __init__(self, existing_id: str):
        super().__init__(f"A review item already exists for this subject: {existing_id}")
        self.existing_id = existing_id

    def details(self) -> dict[str, Any]:
        return {"existing_id": self.existing_id}
