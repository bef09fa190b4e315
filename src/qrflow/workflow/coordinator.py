"""Workflow coordinator.

The only component that changes a review item's state. Every mutating
operation runs inside the store's per-item critical section:

    lock(item) -> re-read item + queries -> resolve next owner
               -> validate transition -> commit -> publish events

Events are published after the commit and before the lock is released, so
observers never see a state that was not committed and per-item event order
matches commit order.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timezone

from qrflow.errors import (
    AlreadyCompleted,
    QueryAlreadyResolved,
    QueryNotFound,
    ReviewItemNotFound,
    WorkflowError,
)
from qrflow.infra.notifications import NotificationDispatcher
from qrflow.infra.store import WorkflowStore
from qrflow.models.events import QueryResolvedEvent, StateChangeEvent
from qrflow.models.queries import (
    BulkResolveResult,
    Query,
    QueryPriority,
    QueryStats,
    QueryStatus,
)
from qrflow.models.review import RaiseOutcome, ResolveOutcome, ReviewItem
from qrflow.models.state import Completed, StateKind, state_for_owner
from qrflow.workflow.resolver import order_open_queries, resolve_next_owner
from qrflow.workflow.state_machine import validate_transition
from qrflow.workflow.teams import TeamRegistry

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowCoordinator:
    """Routes review items between the originator and the responding teams."""

    def __init__(
        self,
        store: WorkflowStore,
        teams: TeamRegistry,
        dispatcher: NotificationDispatcher | None = None,
        clock: Callable[[], datetime] = _utcnow,
        query_overdue_days: int = 3,
    ):
        self.store = store
        self.teams = teams
        self.dispatcher = dispatcher or NotificationDispatcher()
        self.clock = clock
        self.query_overdue_days = query_overdue_days

    # ------------------------------------------------------------------
    # Review items
    # ------------------------------------------------------------------

    async def open_review_item(
        self,
        initiated_by: str,
        *,
        project_code: str,
        material_code: str,
        plant_code: str,
        material_name: str | None = None,
    ) -> ReviewItem:
        """Create a review item with the originator holding it."""
        now = self.clock()
        item = ReviewItem(
            project_code=project_code,
            material_code=material_code,
            plant_code=plant_code,
            material_name=material_name,
            initiated_by=initiated_by,
            created_at=now,
            updated_at=now,
        )
        await self.store.add_item(item)
        logger.info(f"Opened review item {item.id} for {project_code}/{material_code}/{plant_code}")
        return item

    async def get_review_item(self, review_item_id: str) -> ReviewItem:
        return await self._require_item(review_item_id)

    async def list_review_items(self, state_kind: StateKind | None = None) -> list[ReviewItem]:
        items = await self.store.list_items()
        if state_kind is not None:
            items = [item for item in items if item.state.kind == state_kind.value]
        return sorted(items, key=lambda item: item.created_at)

    async def get_current_owner(self, review_item_id: str):
        """Owner derived from the persisted state alone."""
        item = await self._require_item(review_item_id)
        return item.state.owner

    async def complete_originator_review(self, review_item_id: str, completed_by: str) -> ReviewItem:
        async with self.store.lock(review_item_id):
            item = await self._require_item(review_item_id)
            if isinstance(item.state, Completed):
                raise AlreadyCompleted(review_item_id)
            target = Completed()
            validate_transition(item.state, target)
            now = self.clock()
            committed = await self.store.commit(
                item.model_copy(
                    update={
                        "state": target,
                        "updated_at": now,
                        "completed_at": now,
                        "completed_by": completed_by,
                    }
                ),
                [],
                expected_version=item.version,
            )
            self._state_changed(item, committed, completed_by)
        return committed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def raise_query(
        self,
        review_item_id: str,
        raised_by: str,
        assigned_team: str,
        question: str = "",
        *,
        step_number: int | None = None,
        field_name: str | None = None,
        priority: QueryPriority = QueryPriority.MEDIUM,
        category: str | None = None,
    ) -> Query:
        """Open a blocking query and re-route the item if the owner changes."""
        outcome = await self.raise_and_route(
            review_item_id,
            raised_by,
            assigned_team,
            question,
            step_number=step_number,
            field_name=field_name,
            priority=priority,
            category=category,
        )
        return outcome.query

    async def raise_and_route(
        self,
        review_item_id: str,
        raised_by: str,
        assigned_team: str,
        question: str = "",
        *,
        step_number: int | None = None,
        field_name: str | None = None,
        priority: QueryPriority = QueryPriority.MEDIUM,
        category: str | None = None,
    ) -> RaiseOutcome:
        """Like ``raise_query`` but also reports the state committed with the query."""
        self.teams.require_known(raised_by)
        self.teams.require_responding(assigned_team)

        async with self.store.lock(review_item_id):
            item = await self._require_item(review_item_id)
            if isinstance(item.state, Completed):
                raise AlreadyCompleted(review_item_id)

            query = Query(
                id=await self.store.next_query_id(),
                review_item_id=review_item_id,
                raised_by_team=raised_by,
                assigned_team=assigned_team,
                question=question,
                created_at=self.clock(),
                step_number=step_number,
                field_name=field_name,
                priority=priority,
                category=category,
            )
            open_queries = [q for q in await self.store.list_queries(review_item_id) if q.is_open]
            open_queries.append(query)
            committed = await self._route(item, open_queries, [query], triggered_by=raised_by)

        logger.info(f"Query {query.id} raised by {raised_by} for {assigned_team} on review item {review_item_id}")
        return RaiseOutcome(
            review_item_id=review_item_id,
            previous_state=item.state,
            new_state=committed.state,
            query=query,
        )

    async def resolve_query(self, query_id: int, resolved_by: str, resolution_text: str = "") -> ResolveOutcome:
        """Resolve an open query and hand the item to whoever acts next."""
        query = await self._require_query(query_id)

        async with self.store.lock(query.review_item_id):
            item = await self._require_item(query.review_item_id)
            # Re-read under the lock; a concurrent caller may have resolved it already
            query = await self._require_query(query_id)
            if not query.is_open:
                raise QueryAlreadyResolved(query_id)

            now = self.clock()
            resolved = query.model_copy(
                update={
                    "status": QueryStatus.RESOLVED,
                    "resolved_at": now,
                    "resolved_by": resolved_by,
                    "resolution_text": resolution_text,
                }
            )
            remaining = [
                q for q in await self.store.list_queries(item.id) if q.is_open and q.id != query_id
            ]
            committed = await self._route(item, remaining, [resolved], triggered_by=resolved_by)
            self.dispatcher.publish(
                QueryResolvedEvent(
                    query_id=query_id,
                    review_item_id=item.id,
                    resolved_by=resolved_by,
                    timestamp=now,
                )
            )

        logger.info(f"Query {query_id} resolved by {resolved_by}; review item {item.id} is {committed.state}")
        return ResolveOutcome(
            review_item_id=item.id,
            previous_state=item.state,
            new_state=committed.state,
            query=resolved,
        )

    async def bulk_resolve(
        self, query_ids: Iterable[int], resolved_by: str, resolution_text: str = ""
    ) -> list[BulkResolveResult]:
        """Resolve several queries one by one, reporting a typed outcome per id."""
        results = []
        for query_id in query_ids:
            try:
                outcome = await self.resolve_query(query_id, resolved_by, resolution_text)
            except WorkflowError as e:
                logger.info(f"Bulk resolve of query {query_id} failed: {e}")
                results.append(
                    BulkResolveResult(query_id=query_id, resolved=False, error=e.code, details=e.details())
                )
            else:
                results.append(
                    BulkResolveResult(query_id=query_id, resolved=True, new_state=str(outcome.new_state))
                )
        return results

    async def reassign_query(self, query_id: int, new_team: str, updated_by: str) -> Query:
        """Direct an open query at a different responding team."""
        self.teams.require_responding(new_team)
        query = await self._require_query(query_id)

        async with self.store.lock(query.review_item_id):
            item = await self._require_item(query.review_item_id)
            query = await self._require_query(query_id)
            if not query.is_open:
                raise QueryAlreadyResolved(query_id)
            if query.assigned_team == new_team:
                return query

            updated = query.model_copy(update={"assigned_team": new_team})
            open_queries = [
                updated if q.id == query_id else q
                for q in await self.store.list_queries(item.id)
                if q.is_open
            ]
            await self._route(item, open_queries, [updated], triggered_by=updated_by)

        logger.info(f"Query {query_id} reassigned from {query.assigned_team} to {new_team} by {updated_by}")
        return updated

    async def update_query_priority(self, query_id: int, priority: QueryPriority, updated_by: str) -> Query:
        query = await self._require_query(query_id)

        async with self.store.lock(query.review_item_id):
            item = await self._require_item(query.review_item_id)
            query = await self._require_query(query_id)
            if not query.is_open:
                raise QueryAlreadyResolved(query_id)
            updated = query.model_copy(update={"priority": priority})
            open_queries = [
                updated if q.id == query_id else q
                for q in await self.store.list_queries(item.id)
                if q.is_open
            ]
            await self._route(item, open_queries, [updated], triggered_by=updated_by)

        logger.debug(f"Query {query_id} priority set to {priority.value} by {updated_by}")
        return updated

    async def get_query(self, query_id: int) -> Query:
        return await self._require_query(query_id)

    async def list_queries(self, review_item_id: str) -> list[Query]:
        await self._require_item(review_item_id)
        queries = await self.store.list_queries(review_item_id)
        return sorted(queries, key=lambda q: q.sort_key)

    async def list_open_queries(self, review_item_id: str) -> list[Query]:
        """Open queries of an item, oldest first."""
        await self._require_item(review_item_id)
        return order_open_queries(await self.store.list_queries(review_item_id))

    # ------------------------------------------------------------------
    # Team inboxes
    # ------------------------------------------------------------------

    async def team_inbox(self, team: str) -> list[Query]:
        """Open queries waiting on a team, oldest first."""
        self.teams.require_responding(team)
        queries = await self.store.list_all_queries()
        return order_open_queries(q for q in queries if q.assigned_team == team)

    async def team_resolved(self, team: str) -> list[Query]:
        """Queries a team has answered, most recently resolved first."""
        self.teams.require_responding(team)
        queries = await self.store.list_all_queries()
        resolved = [q for q in queries if q.assigned_team == team and not q.is_open]
        return sorted(resolved, key=lambda q: (q.resolved_at, q.id), reverse=True)

    async def overdue_queries(self) -> list[Query]:
        now = self.clock()
        queries = await self.store.list_all_queries()
        return order_open_queries(q for q in queries if q.is_overdue(self.query_overdue_days, now))

    async def query_stats(self, team: str) -> QueryStats:
        self.teams.require_responding(team)
        now = self.clock()
        stats = QueryStats(team=team)
        for query in await self.store.list_all_queries():
            if query.assigned_team != team:
                continue
            if query.is_open:
                stats.open += 1
                if query.is_overdue(self.query_overdue_days, now):
                    stats.overdue += 1
                if query.is_high_priority:
                    stats.high_priority_open += 1
            else:
                stats.resolved += 1
        return stats

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _require_item(self, review_item_id: str) -> ReviewItem:
        item = await self.store.get_item(review_item_id)
        if item is None:
            raise ReviewItemNotFound(review_item_id)
        return item

    async def _require_query(self, query_id: int) -> Query:
        query = await self.store.get_query(query_id)
        if query is None:
            raise QueryNotFound(query_id)
        return query

    async def _route(
        self,
        item: ReviewItem,
        open_queries: list[Query],
        changed_queries: list[Query],
        triggered_by: str,
    ) -> ReviewItem:
        """Move the item to the state its open queries call for and commit.

        Must be called inside ``store.lock(item.id)`` with ``item`` read under
        that lock.
        """
        target = state_for_owner(resolve_next_owner(open_queries))
        validate_transition(item.state, target)
        committed = await self.store.commit(
            item.model_copy(update={"state": target, "updated_at": self.clock()}),
            changed_queries,
            expected_version=item.version,
        )
        self._state_changed(item, committed, triggered_by)
        return committed

    def _state_changed(self, before: ReviewItem, after: ReviewItem, triggered_by: str) -> None:
        if before.state == after.state:
            return
        logger.info(f"Review item {after.id}: {before.state} -> {after.state} (by {triggered_by})")
        self.dispatcher.publish(
            StateChangeEvent(
                review_item_id=after.id,
                previous_state=before.state,
                new_state=after.state,
                triggered_by=triggered_by,
                timestamp=after.updated_at,
            )
        )
