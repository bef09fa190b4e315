"""Review item routes.

Create review items, raise queries against them, read their current owner
and let the originator complete them.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from qrflow.api.deps import get_audit_log, get_coordinator
from qrflow.api.events import completed_stream, event_bus
from qrflow.api.identity import current_team, ensure_acting_as
from qrflow.api.schemas import (
    CompleteReviewRequest,
    CompleteReviewResponse,
    CreateReviewItemRequest,
    OpenQueryEntry,
    OwnerResponse,
    QueryResponse,
    RaiseQueryRequest,
    RaiseQueryResponse,
    ReviewItemResponse,
)
from qrflow.infra.notifications import InMemoryAuditLog
from qrflow.models.events import QueryResolvedEvent
from qrflow.models.state import Completed, StateKind
from qrflow.workflow.coordinator import WorkflowCoordinator

router = APIRouter(tags=["review-items"])


@router.post("/review-items", response_model=ReviewItemResponse, status_code=201)
async def create_review_item(
    request: CreateReviewItemRequest,
    coordinator: WorkflowCoordinator = Depends(get_coordinator),
):
    """Open a review item held by the originator."""
    item = await coordinator.open_review_item(
        request.initiated_by,
        project_code=request.project_code,
        material_code=request.material_code,
        plant_code=request.plant_code,
        material_name=request.material_name,
    )
    return ReviewItemResponse.from_item(item)


@router.get("/review-items", response_model=list[ReviewItemResponse])
async def list_review_items(
    state: StateKind | None = None,
    coordinator: WorkflowCoordinator = Depends(get_coordinator),
):
    """List review items, optionally filtered by state kind."""
    items = await coordinator.list_review_items(state)
    return [ReviewItemResponse.from_item(item) for item in items]


@router.get("/review-items/{review_item_id}", response_model=ReviewItemResponse)
async def get_review_item(review_item_id: str, coordinator: WorkflowCoordinator = Depends(get_coordinator)):
    item = await coordinator.get_review_item(review_item_id)
    return ReviewItemResponse.from_item(item)


@router.get("/review-items/{review_item_id}/owner", response_model=OwnerResponse)
async def get_current_owner(review_item_id: str, coordinator: WorkflowCoordinator = Depends(get_coordinator)):
    owner = await coordinator.get_current_owner(review_item_id)
    return OwnerResponse(review_item_id=review_item_id, owner=owner.label)


@router.post("/review-items/{review_item_id}/queries", response_model=RaiseQueryResponse, status_code=201)
async def raise_query(
    review_item_id: str,
    request: RaiseQueryRequest,
    acting_team: str | None = Depends(current_team),
    coordinator: WorkflowCoordinator = Depends(get_coordinator),
):
    """Raise a blocking query against a review item."""
    ensure_acting_as(acting_team, request.raised_by_team)
    outcome = await coordinator.raise_and_route(
        review_item_id,
        request.raised_by_team,
        request.assigned_team,
        request.text,
        step_number=request.step_number,
        field_name=request.field_name,
        priority=request.priority,
        category=request.category,
    )
    return RaiseQueryResponse(
        query_id=outcome.query.id, review_item_id=review_item_id, state=str(outcome.new_state)
    )


@router.get("/review-items/{review_item_id}/queries", response_model=list[QueryResponse])
async def list_queries(review_item_id: str, coordinator: WorkflowCoordinator = Depends(get_coordinator)):
    """All queries of a review item, oldest first."""
    queries = await coordinator.list_queries(review_item_id)
    now = coordinator.clock()
    return [QueryResponse.from_query(q, coordinator.query_overdue_days, now) for q in queries]


@router.get("/review-items/{review_item_id}/queries/open", response_model=list[OpenQueryEntry])
async def list_open_queries(review_item_id: str, coordinator: WorkflowCoordinator = Depends(get_coordinator)):
    """Open queries in the order their teams will own the item."""
    queries = await coordinator.list_open_queries(review_item_id)
    return [
        OpenQueryEntry(query_id=q.id, assigned_team=q.assigned_team, created_at=q.created_at)
        for q in queries
    ]


@router.post("/review-items/{review_item_id}/complete", response_model=CompleteReviewResponse)
async def complete_originator_review(
    review_item_id: str,
    request: CompleteReviewRequest,
    coordinator: WorkflowCoordinator = Depends(get_coordinator),
):
    """Originator finishes the questionnaire once no queries are open."""
    item = await coordinator.complete_originator_review(review_item_id, request.completed_by)
    return CompleteReviewResponse(review_item_id=item.id, new_state=str(item.state))


@router.get("/review-items/{review_item_id}/audit", response_model=list[QueryResolvedEvent])
async def get_audit_trail(
    review_item_id: str,
    coordinator: WorkflowCoordinator = Depends(get_coordinator),
    audit_log: InMemoryAuditLog = Depends(get_audit_log),
):
    """Resolved-query events recorded for a review item."""
    await coordinator.get_review_item(review_item_id)
    await coordinator.dispatcher.flush()
    return audit_log.for_item(review_item_id)


@router.get("/review-items/{review_item_id}/stream")
async def stream_review_item(review_item_id: str, coordinator: WorkflowCoordinator = Depends(get_coordinator)):
    """SSE endpoint for real-time state changes of a review item."""
    item = await coordinator.get_review_item(review_item_id)
    if isinstance(item.state, Completed):
        stream = completed_stream(review_item_id, item.completed_at)
    else:
        stream = event_bus.subscribe(review_item_id)

    return StreamingResponse(
        stream,
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/health")
async def health_check():
    return {"status": "ok"}
