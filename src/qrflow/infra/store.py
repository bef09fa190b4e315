"""Persistence boundary for review items and queries.

A store provides two things to the coordinator:

- ``lock(review_item_id)``: the per-item critical section. Everything the
  coordinator reads and writes for one operation happens inside it.
- ``commit(item, queries, expected_version)``: an atomic write of the item
  and the queries touched by the operation. The item version must still
  match ``expected_version``, otherwise ``ConcurrentModification``.

The in-memory store backs tests and single-process deployments. The Redis
store (``qrflow.infra.redis``) backs multi-process deployments.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import AsyncIterator, Protocol

from qrflow.errors import ConcurrentModification, DuplicateReviewItem
from qrflow.models.queries import Query
from qrflow.models.review import ReviewItem

logger = logging.getLogger(__name__)


class WorkflowStore(Protocol):
    def lock(self, review_item_id: str) -> AbstractAsyncContextManager[None]: ...

    async def next_query_id(self) -> int: ...

    async def add_item(self, item: ReviewItem) -> ReviewItem: ...

    async def get_item(self, review_item_id: str) -> ReviewItem | None: ...

    async def list_items(self) -> list[ReviewItem]: ...

    async def get_query(self, query_id: int) -> Query | None: ...

    async def list_queries(self, review_item_id: str) -> list[Query]: ...

    async def list_all_queries(self) -> list[Query]: ...

    async def commit(
        self, item: ReviewItem, queries: Iterable[Query], expected_version: int
    ) -> ReviewItem: ...

    async def close(self) -> None: ...


def bump_version(item: ReviewItem) -> ReviewItem:
    return item.model_copy(update={"version": item.version + 1})


class _ItemLock:
    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class InMemoryWorkflowStore:
    """In-process store with one asyncio lock per review item in use."""

    def __init__(self):
        self._items: dict[str, ReviewItem] = {}
        self._queries: dict[int, Query] = {}
        self._item_queries: dict[str, list[int]] = {}
        self._subjects: dict[tuple[str, str, str], str] = {}
        self._locks: dict[str, _ItemLock] = {}
        self._query_seq = 0

    @asynccontextmanager
    async def lock(self, review_item_id: str) -> AsyncIterator[None]:
        entry = self._locks.get(review_item_id)
        if entry is None:
            entry = self._locks[review_item_id] = _ItemLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            # Nobody holds or waits on it any more
            if entry.users == 0:
                del self._locks[review_item_id]

    async def next_query_id(self) -> int:
        self._query_seq += 1
        return self._query_seq

    async def add_item(self, item: ReviewItem) -> ReviewItem:
        existing = self._subjects.get(item.subject_key)
        if existing is not None:
            raise DuplicateReviewItem(existing)
        self._items[item.id] = item.model_copy()
        self._item_queries[item.id] = []
        self._subjects[item.subject_key] = item.id
        logger.debug(f"Stored review item {item.id}")
        return item

    async def get_item(self, review_item_id: str) -> ReviewItem | None:
        item = self._items.get(review_item_id)
        return item.model_copy() if item else None

    async def list_items(self) -> list[ReviewItem]:
        return [item.model_copy() for item in self._items.values()]

    async def get_query(self, query_id: int) -> Query | None:
        query = self._queries.get(query_id)
        return query.model_copy() if query else None

    async def list_queries(self, review_item_id: str) -> list[Query]:
        # Yield once so concurrent callers interleave the way they would against a real backend
        await asyncio.sleep(0)
        return [self._queries[qid].model_copy() for qid in self._item_queries.get(review_item_id, [])]

    async def list_all_queries(self) -> list[Query]:
        return [query.model_copy() for query in self._queries.values()]

    async def commit(
        self, item: ReviewItem, queries: Iterable[Query], expected_version: int
    ) -> ReviewItem:
        current = self._items.get(item.id)
        if current is None or current.version != expected_version:
            raise ConcurrentModification(
                item.id,
                f"expected version {expected_version}, found {current.version if current else None}",
            )
        stored = bump_version(item)
        for query in queries:
            if query.id not in self._queries:
                self._item_queries.setdefault(item.id, []).append(query.id)
            self._queries[query.id] = query.model_copy()
        self._items[item.id] = stored
        return stored.model_copy()

    async def close(self) -> None:
        self._locks.clear()
