"""Redis workflow store tests.

Lock and write failure handling run against a mocked client. The end-to-end tests
need a real server and run only when REDIS_URL is set.
"""

import asyncio
import os
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError, LockError

from qrflow.errors import ConcurrentModification, DuplicateReviewItem
from qrflow.infra.redis import RedisWorkflowStore
from qrflow.models.review import ReviewItem
from qrflow.models.state import OriginatorPending, Pending
from qrflow.workflow.coordinator import WorkflowCoordinator

REDIS_URL = os.getenv("REDIS_URL")


def mock_client(acquire):
    lock = MagicMock()
    lock.acquire = acquire
    lock.release = AsyncMock()
    client = MagicMock()
    client.lock.return_value = lock
    return client, lock


class TestLockHandling:
    async def test_lock_not_acquired(self):
        client, _ = mock_client(AsyncMock(return_value=False))
        store = RedisWorkflowStore(client, lock_blocking_timeout=0.1)

        with pytest.raises(ConcurrentModification) as exc_info:
            async with store.lock("item-1"):
                pass

        assert exc_info.value.review_item_id == "item-1"

    async def test_lock_error_becomes_concurrent_modification(self):
        client, _ = mock_client(AsyncMock(side_effect=LockError("boom")))
        store = RedisWorkflowStore(client)

        with pytest.raises(ConcurrentModification):
            async with store.lock("item-1"):
                pass

    async def test_lock_key_and_timeouts(self):
        client, lock = mock_client(AsyncMock(return_value=True))
        store = RedisWorkflowStore(client, key_prefix="test", lock_timeout=7, lock_blocking_timeout=2)

        async with store.lock("item-1"):
            pass

        client.lock.assert_called_once_with("test:lock:item:item-1", timeout=7, blocking_timeout=2)
        lock.release.assert_awaited_once()


class TestAddItem:
    async def test_failed_write_releases_subject_claim(self):
        pipe = MagicMock()
        pipe.execute = AsyncMock(side_effect=RedisConnectionError("connection reset"))
        client = MagicMock()
        client.set = AsyncMock(return_value=True)
        client.delete = AsyncMock()
        client.pipeline.return_value.__aenter__.return_value = pipe
        client.pipeline.return_value.__aexit__.return_value = False
        store = RedisWorkflowStore(client, key_prefix="test")
        item = ReviewItem(project_code="P", material_code="M", plant_code="1", initiated_by="x")

        with pytest.raises(RedisConnectionError):
            await store.add_item(item)

        client.set.assert_awaited_once_with("test:subject:P|M|1", item.id, nx=True)
        client.delete.assert_awaited_once_with("test:subject:P|M|1")

    async def test_duplicate_claim_is_left_alone(self):
        client = MagicMock()
        client.set = AsyncMock(return_value=None)
        client.get = AsyncMock(return_value="existing-id")
        client.delete = AsyncMock()
        store = RedisWorkflowStore(client, key_prefix="test")

        with pytest.raises(DuplicateReviewItem) as exc_info:
            await store.add_item(ReviewItem(project_code="P", material_code="M", plant_code="1", initiated_by="x"))

        assert exc_info.value.existing_id == "existing-id"
        client.delete.assert_not_awaited()


@pytest.fixture
async def redis_store(teams):
    if not REDIS_URL:
        pytest.skip("REDIS_URL not set")
    from redis.asyncio import Redis

    client = Redis.from_url(REDIS_URL, encoding="utf-8", decode_responses=True)
    store = RedisWorkflowStore(client, key_prefix=f"qrflow-test-{uuid.uuid4().hex[:8]}")
    yield store
    keys = [key async for key in client.scan_iter(match=f"{store.key_prefix}:*")]
    if keys:
        await client.delete(*keys)
    await store.close()


@pytest.mark.skipif(not REDIS_URL, reason="REDIS_URL not set")
class TestRedisIntegration:
    async def test_routing_round_trip(self, redis_store, teams, clock):
        coordinator = WorkflowCoordinator(redis_store, teams, clock=clock)
        item = await coordinator.open_review_item("plant.user", project_code="P", material_code="M", plant_code="1")

        q1 = await coordinator.raise_query(item.id, "PLANT", "A", "q1")
        clock.advance(minutes=1)
        await coordinator.raise_query(item.id, "PLANT", "B", "q2")
        assert (await coordinator.get_review_item(item.id)).state == Pending(team="A")

        await coordinator.resolve_query(q1.id, "A", "ok")
        assert (await coordinator.get_review_item(item.id)).state == Pending(team="B")
        assert [q.id for q in await coordinator.list_queries(item.id)] == [q1.id, q1.id + 1]

    async def test_duplicate_subject(self, redis_store):
        item = ReviewItem(project_code="P", material_code="M", plant_code="1", initiated_by="x")
        await redis_store.add_item(item)

        with pytest.raises(DuplicateReviewItem):
            await redis_store.add_item(
                ReviewItem(project_code="P", material_code="M", plant_code="1", initiated_by="y")
            )

    async def test_stale_version_rejected(self, redis_store):
        item = ReviewItem(project_code="P", material_code="M", plant_code="2", initiated_by="x")
        await redis_store.add_item(item)
        await redis_store.commit(item, [], expected_version=0)

        with pytest.raises(ConcurrentModification):
            await redis_store.commit(item, [], expected_version=0)

    async def test_concurrent_resolutions(self, redis_store, teams, clock):
        coordinator = WorkflowCoordinator(redis_store, teams, clock=clock)
        item = await coordinator.open_review_item("plant.user", project_code="P", material_code="M", plant_code="3")
        queries = []
        for team in ("A", "B", "C"):
            clock.advance(minutes=1)
            queries.append(await coordinator.raise_query(item.id, "PLANT", team, "q"))

        await asyncio.gather(*(coordinator.resolve_query(q.id, q.assigned_team, "ok") for q in queries))

        assert (await coordinator.get_review_item(item.id)).state == OriginatorPending()
