"""Redis-backed workflow store.

Key layout (``{prefix}`` defaults to ``qrflow``):

- ``{prefix}:item:{id}``            review item JSON
- ``{prefix}:item:{id}:queries``    list of query ids in creation order
- ``{prefix}:items``                set of review item ids
- ``{prefix}:subject:{p}|{m}|{pl}`` review item id for a project/material/plant
- ``{prefix}:query:{id}``           query JSON
- ``{prefix}:queries``              set of all query ids
- ``{prefix}:seq:query``            query id sequence (INCR)
- ``{prefix}:lock:item:{id}``       per-item lock

The per-item critical section is a Redis lock. Commits additionally WATCH
the item key and compare versions, so a lock that expired mid-operation
still cannot produce a lost update.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from redis.exceptions import LockError, WatchError

from qrflow.errors import ConcurrentModification, DuplicateReviewItem
from qrflow.infra.store import bump_version
from qrflow.models.queries import Query
from qrflow.models.review import ReviewItem

logger = logging.getLogger(__name__)


def _text(value: Any) -> str:
    return value.decode() if isinstance(value, bytes) else str(value)


class RedisWorkflowStore:
    """Workflow store on ``redis.asyncio``."""

    def __init__(
        self,
        redis_client: Any,
        key_prefix: str = "qrflow",
        lock_timeout: float = 10.0,
        lock_blocking_timeout: float = 5.0,
    ):
        self.redis = redis_client
        self.key_prefix = key_prefix
        self.lock_timeout = lock_timeout
        self.lock_blocking_timeout = lock_blocking_timeout

    def _key(self, *parts: Any) -> str:
        return ":".join([self.key_prefix, *(str(p) for p in parts)])

    def _item_key(self, review_item_id: str) -> str:
        return self._key("item", review_item_id)

    def _query_key(self, query_id: int) -> str:
        return self._key("query", query_id)

    def _subject_key(self, item: ReviewItem) -> str:
        return self._key("subject", "|".join(item.subject_key))

    @asynccontextmanager
    async def lock(self, review_item_id: str) -> AsyncIterator[None]:
        lock = self.redis.lock(
            self._key("lock", "item", review_item_id),
            timeout=self.lock_timeout,
            blocking_timeout=self.lock_blocking_timeout,
        )
        try:
            acquired = await lock.acquire()
        except LockError as e:
            raise ConcurrentModification(review_item_id, str(e)) from e
        if not acquired:
            raise ConcurrentModification(
                review_item_id, f"lock not acquired within {self.lock_blocking_timeout}s"
            )
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError as e:
                # Lock expired before release; the versioned commit already guarded the write
                logger.warning(f"Lock for review item {review_item_id} expired before release: {e}")

    async def next_query_id(self) -> int:
        return int(await self.redis.incr(self._key("seq", "query")))

    async def add_item(self, item: ReviewItem) -> ReviewItem:
        subject_key = self._subject_key(item)
        claimed = await self.redis.set(subject_key, item.id, nx=True)
        if not claimed:
            existing = await self.redis.get(subject_key)
            raise DuplicateReviewItem(_text(existing))
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.set(self._item_key(item.id), item.model_dump_json())
                pipe.sadd(self._key("items"), item.id)
                await pipe.execute()
        except Exception:
            # Release the subject claim so the item can be created again
            await self.redis.delete(subject_key)
            raise
        logger.debug(f"Stored review item {item.id}")
        return item

    async def get_item(self, review_item_id: str) -> ReviewItem | None:
        raw = await self.redis.get(self._item_key(review_item_id))
        return ReviewItem.model_validate_json(raw) if raw else None

    async def list_items(self) -> list[ReviewItem]:
        ids = await self.redis.smembers(self._key("items"))
        if not ids:
            return []
        values = await self.redis.mget([self._item_key(_text(i)) for i in ids])
        return [ReviewItem.model_validate_json(v) for v in values if v]

    async def get_query(self, query_id: int) -> Query | None:
        raw = await self.redis.get(self._query_key(query_id))
        return Query.model_validate_json(raw) if raw else None

    async def _load_queries(self, ids: Iterable[Any]) -> list[Query]:
        keys = [self._query_key(int(_text(i))) for i in ids]
        if not keys:
            return []
        values = await self.redis.mget(keys)
        return [Query.model_validate_json(v) for v in values if v]

    async def list_queries(self, review_item_id: str) -> list[Query]:
        ids = await self.redis.lrange(self._key("item", review_item_id, "queries"), 0, -1)
        return await self._load_queries(ids)

    async def list_all_queries(self) -> list[Query]:
        ids = await self.redis.smembers(self._key("queries"))
        return await self._load_queries(sorted(ids, key=lambda i: int(_text(i))))

    async def commit(
        self, item: ReviewItem, queries: Iterable[Query], expected_version: int
    ) -> ReviewItem:
        item_key = self._item_key(item.id)
        queries = list(queries)
        async with self.redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(item_key)
                raw = await pipe.get(item_key)
                current = ReviewItem.model_validate_json(raw) if raw else None
                if current is None or current.version != expected_version:
                    raise ConcurrentModification(
                        item.id,
                        f"expected version {expected_version}, found {current.version if current else None}",
                    )
                new_ids = [q.id for q in queries if not await pipe.exists(self._query_key(q.id))]

                stored = bump_version(item)
                pipe.multi()
                pipe.set(item_key, stored.model_dump_json())
                for query in queries:
                    pipe.set(self._query_key(query.id), query.model_dump_json())
                    pipe.sadd(self._key("queries"), query.id)
                for query_id in new_ids:
                    pipe.rpush(self._key("item", item.id, "queries"), query_id)
                await pipe.execute()
            except WatchError as e:
                raise ConcurrentModification(item.id, "item changed during commit") from e
        return stored

    async def close(self) -> None:
        await self.redis.aclose()
