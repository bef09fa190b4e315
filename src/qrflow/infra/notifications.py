"""Outbound collaborator boundary: notification and audit sinks.

The coordinator publishes events to a ``NotificationDispatcher`` inside the
per-item critical section, right after the commit. A single worker drains
the dispatcher queue in FIFO order, so the sinks see a review item's
state changes in the order they were committed.

Sinks are fire-and-forget: a failing sink is logged and skipped, it never
affects the operation that produced the event.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from contextlib import suppress
from datetime import datetime
from typing import Protocol

from qrflow.models.events import QueryResolvedEvent, StateChangeEvent
from qrflow.models.state import WorkflowState

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    async def on_state_changed(
        self,
        review_item_id: str,
        previous_state: WorkflowState,
        new_state: WorkflowState,
        triggered_by: str,
        timestamp: datetime,
    ) -> None: ...


class AuditSink(Protocol):
    async def on_query_resolved(
        self, query_id: int, review_item_id: str, resolved_by: str, timestamp: datetime
    ) -> None: ...


class LoggingNotificationSink:
    async def on_state_changed(self, review_item_id, previous_state, new_state, triggered_by, timestamp):
        logger.info(
            f"Review item {review_item_id}: {previous_state} -> {new_state} "
            f"(by {triggered_by} at {timestamp.isoformat()})"
        )


class LoggingAuditSink:
    async def on_query_resolved(self, query_id, review_item_id, resolved_by, timestamp):
        logger.info(f"Query {query_id} on review item {review_item_id} resolved by {resolved_by}")


class InMemoryAuditLog:
    """Keeps resolved-query events in memory, newest last."""

    def __init__(self):
        self.entries: list[QueryResolvedEvent] = []

    async def on_query_resolved(self, query_id, review_item_id, resolved_by, timestamp):
        self.entries.append(
            QueryResolvedEvent(
                query_id=query_id,
                review_item_id=review_item_id,
                resolved_by=resolved_by,
                timestamp=timestamp,
            )
        )

    def for_item(self, review_item_id: str) -> list[QueryResolvedEvent]:
        return [e for e in self.entries if e.review_item_id == review_item_id]


class NotificationDeduplicator:
    """Suppresses repeats of the same notification key within a time window.

    ``clock`` returns seconds; entries older than ``retention_seconds`` are
    pruned on every check.
    """

    def __init__(
        self,
        window_seconds: float = 30.0,
        retention_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if retention_seconds < window_seconds:
            raise ValueError("retention_seconds must be >= window_seconds")
        self.window_seconds = window_seconds
        self.retention_seconds = retention_seconds
        self.clock = clock
        self._last_sent: dict[str, float] = {}

    def should_send(self, key: str) -> bool:
        now = self.clock()
        self._prune(now)
        last = self._last_sent.get(key)
        if last is not None and now - last < self.window_seconds:
            logger.info(f"Skipping duplicate notification {key} (sent {now - last:.1f}s ago)")
            return False
        self._last_sent[key] = now
        return True

    def _prune(self, now: float) -> None:
        stale = [k for k, sent in self._last_sent.items() if now - sent > self.retention_seconds]
        for key in stale:
            del self._last_sent[key]

    def __len__(self) -> int:
        return len(self._last_sent)


class DeduplicatingNotificationSink:
    """Wraps a sink so identical state changes inside the window are delivered once."""

    def __init__(self, inner: NotificationSink, deduplicator: NotificationDeduplicator):
        self.inner = inner
        self.deduplicator = deduplicator

    async def on_state_changed(self, review_item_id, previous_state, new_state, triggered_by, timestamp):
        key = f"{review_item_id}:{previous_state}:{new_state}:{triggered_by}"
        if not self.deduplicator.should_send(key):
            return
        await self.inner.on_state_changed(review_item_id, previous_state, new_state, triggered_by, timestamp)


class NotificationDispatcher:
    """Ordered, fire-and-forget delivery of core events to the sinks."""

    def __init__(
        self,
        notification_sinks: Iterable[NotificationSink] = (),
        audit_sinks: Iterable[AuditSink] = (),
    ):
        self.notification_sinks = list(notification_sinks)
        self.audit_sinks = list(audit_sinks)
        self._queue: asyncio.Queue[StateChangeEvent | QueryResolvedEvent] = asyncio.Queue()
        self._worker: asyncio.Task | None = None

    def publish(self, event: StateChangeEvent | QueryResolvedEvent) -> None:
        """Enqueue an event without waiting for delivery."""
        self._queue.put_nowait(event)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def start(self) -> None:
        if self._worker is None:
            self._worker = asyncio.create_task(self._run())

    async def flush(self) -> None:
        """Wait until every published event has been delivered."""
        if self._worker is None:
            while not self._queue.empty():
                event = self._queue.get_nowait()
                try:
                    await self._deliver(event)
                finally:
                    self._queue.task_done()
        else:
            await self._queue.join()

    async def stop(self) -> None:
        await self.flush()
        if self._worker is not None:
            self._worker.cancel()
            with suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._deliver(event)
            finally:
                self._queue.task_done()

    async def _deliver(self, event: StateChangeEvent | QueryResolvedEvent) -> None:
        if isinstance(event, StateChangeEvent):
            for sink in self.notification_sinks:
                try:
                    await sink.on_state_changed(
                        event.review_item_id,
                        event.previous_state,
                        event.new_state,
                        event.triggered_by,
                        event.timestamp,
                    )
                except Exception as e:
                    logger.warning(f"Notification sink {type(sink).__name__} failed for {event.review_item_id}: {e}")
        else:
            for sink in self.audit_sinks:
                try:
                    await sink.on_query_resolved(
                        event.query_id, event.review_item_id, event.resolved_by, event.timestamp
                    )
                except Exception as e:
                    logger.warning(f"Audit sink {type(sink).__name__} failed for query {event.query_id}: {e}")
