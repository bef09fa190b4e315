"""Team query inboxes.

Read-side view over the coordinator: what each responding team has waiting,
what it has answered, and what is overdue.
"""

from __future__ import annotations

from qrflow.api.schemas import QueryResponse
from qrflow.models.queries import Query
from qrflow.workflow.coordinator import WorkflowCoordinator


class TeamQueryInbox:
    def __init__(self, coordinator: WorkflowCoordinator):
        self.coordinator = coordinator

    def _present(self, queries: list[Query]) -> list[QueryResponse]:
        now = self.coordinator.clock()
        overdue_days = self.coordinator.query_overdue_days
        return [QueryResponse.from_query(q, overdue_days, now) for q in queries]

    async def get(self, query_id: int) -> QueryResponse:
        query = await self.coordinator.get_query(query_id)
        return self._present([query])[0]

    async def pending(self, team: str) -> list[QueryResponse]:
        """Open queries assigned to a team, oldest first."""
        return self._present(await self.coordinator.team_inbox(team))

    async def resolved(self, team: str) -> list[QueryResponse]:
        return self._present(await self.coordinator.team_resolved(team))

    async def overdue(self) -> list[QueryResponse]:
        return self._present(await self.coordinator.overdue_queries())
