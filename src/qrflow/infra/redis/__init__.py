"""Redis integration package.

This package contains the Redis-backed workflow store: review items,
queries, the query id sequence and the per-item locks.
"""

from qrflow.infra.redis.store import RedisWorkflowStore

__all__ = [
    "RedisWorkflowStore",
]
