from qrflow.models.events import QueryResolvedEvent, StateChangeEvent
from qrflow.models.queries import (
    BulkResolveResult,
    Query,
    QueryPriority,
    QueryStats,
    QueryStatus,
)
from qrflow.models.review import RaiseOutcome, ResolveOutcome, ReviewItem
from qrflow.models.state import (
    ORIGINATOR,
    Completed,
    OriginatorOwner,
    OriginatorPending,
    Owner,
    Pending,
    StateKind,
    TeamOwner,
    WorkflowState,
    state_for_owner,
)

__all__ = [
    "ORIGINATOR",
    "StateKind",
    "WorkflowState",
    "OriginatorPending",
    "Pending",
    "Completed",
    "Owner",
    "OriginatorOwner",
    "TeamOwner",
    "state_for_owner",
    "Query",
    "QueryStatus",
    "QueryPriority",
    "QueryStats",
    "BulkResolveResult",
    "ReviewItem",
    "RaiseOutcome",
    "ResolveOutcome",
    "StateChangeEvent",
    "QueryResolvedEvent",
]
