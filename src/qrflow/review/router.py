"""FastAPI routes for query resolution and team inboxes.

These endpoints power the team dashboards: each responding team sees the
queries waiting on it and resolves them here.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from qrflow.api.deps import get_coordinator
from qrflow.api.identity import current_team, ensure_acting_as
from qrflow.api.schemas import (
    AssignQueryRequest,
    BulkResolveRequest,
    QueryResponse,
    ResolveQueryRequest,
    ResolveQueryResponse,
    UpdatePriorityRequest,
)
from qrflow.models.queries import BulkResolveResult, QueryStats
from qrflow.review.queue import TeamQueryInbox
from qrflow.workflow.coordinator import WorkflowCoordinator

router = APIRouter(tags=["queries"])


def get_inbox(coordinator: WorkflowCoordinator = Depends(get_coordinator)) -> TeamQueryInbox:
    return TeamQueryInbox(coordinator)


@router.post("/{query_id}/resolve", response_model=ResolveQueryResponse)
async def resolve_query(
    query_id: int,
    request: ResolveQueryRequest,
    acting_team: str | None = Depends(current_team),
    coordinator: WorkflowCoordinator = Depends(get_coordinator),
):
    """Resolve an open query; the item moves to whoever acts next."""
    ensure_acting_as(acting_team, request.resolved_by_team)
    outcome = await coordinator.resolve_query(query_id, request.resolved_by_team, request.resolution_text)
    return ResolveQueryResponse(
        review_item_id=outcome.review_item_id,
        previous_state=str(outcome.previous_state),
        new_state=str(outcome.new_state),
        owner=outcome.new_state.owner.label,
    )


@router.put("/bulk-resolve", response_model=list[BulkResolveResult])
async def bulk_resolve(
    request: BulkResolveRequest,
    acting_team: str | None = Depends(current_team),
    coordinator: WorkflowCoordinator = Depends(get_coordinator),
):
    ensure_acting_as(acting_team, request.resolved_by_team)
    return await coordinator.bulk_resolve(request.query_ids, request.resolved_by_team, request.resolution_text)


@router.put("/{query_id}/assign", response_model=QueryResponse)
async def assign_query(
    query_id: int,
    request: AssignQueryRequest,
    coordinator: WorkflowCoordinator = Depends(get_coordinator),
):
    """Redirect an open query at another responding team."""
    query = await coordinator.reassign_query(query_id, request.team, request.updated_by)
    return QueryResponse.from_query(query, coordinator.query_overdue_days, coordinator.clock())


@router.put("/{query_id}/priority", response_model=QueryResponse)
async def update_priority(
    query_id: int,
    request: UpdatePriorityRequest,
    coordinator: WorkflowCoordinator = Depends(get_coordinator),
):
    query = await coordinator.update_query_priority(query_id, request.priority, request.updated_by)
    return QueryResponse.from_query(query, coordinator.query_overdue_days, coordinator.clock())


@router.get("/inbox/{team}", response_model=list[QueryResponse])
async def team_inbox(team: str, inbox: TeamQueryInbox = Depends(get_inbox)):
    """Open queries waiting on a team, oldest first."""
    return await inbox.pending(team)


@router.get("/resolved/{team}", response_model=list[QueryResponse])
async def team_resolved(team: str, inbox: TeamQueryInbox = Depends(get_inbox)):
    return await inbox.resolved(team)


@router.get("/overdue", response_model=list[QueryResponse])
async def overdue_queries(inbox: TeamQueryInbox = Depends(get_inbox)):
    return await inbox.overdue()


@router.get("/stats/{team}", response_model=QueryStats)
async def query_stats(team: str, coordinator: WorkflowCoordinator = Depends(get_coordinator)):
    return await coordinator.query_stats(team)


# Declared last so the fixed paths above take precedence
@router.get("/{query_id}", response_model=QueryResponse)
async def get_query(query_id: int, inbox: TeamQueryInbox = Depends(get_inbox)):
    return await inbox.get(query_id)
