"""Next-owner resolution.

The team behind the oldest still-open query acts next. Ordering is by
``(created_at, id)``; query ids are allocated from a strictly increasing
sequence, so two queries created within the same clock tick still order
deterministically.
"""

from __future__ import annotations

from collections.abc import Iterable

from qrflow.models.queries import Query
from qrflow.models.state import OriginatorOwner, TeamOwner


def earliest_open_query(open_queries: Iterable[Query]) -> Query | None:
    earliest: Query | None = None
    for query in open_queries:
        if not query.is_open:
            raise ValueError(f"Query {query.id} is {query.status.value}, expected OPEN")
        if earliest is None or query.sort_key < earliest.sort_key:
            earliest = query
    return earliest


def resolve_next_owner(open_queries: Iterable[Query]) -> OriginatorOwner | TeamOwner:
    """Compute who must act next given the item's open queries."""
    earliest = earliest_open_query(open_queries)
    if earliest is None:
        return OriginatorOwner()
    return TeamOwner(team=earliest.assigned_team)


def order_open_queries(queries: Iterable[Query]) -> list[Query]:
    """Open queries oldest first, the order in which teams will own the item."""
    return sorted((q for q in queries if q.is_open), key=lambda q: q.sort_key)
