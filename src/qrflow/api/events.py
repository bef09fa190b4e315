"""In-memory event bus for real-time SSE streaming of state changes."""

from __future__ import annotations

import asyncio
import json
from collections import deque
from datetime import datetime
from typing import Any, AsyncGenerator

from qrflow.models.state import Completed

TERMINAL_EVENT = "review_completed"
BUFFER_SIZE = 100


def sse_frame(event: dict[str, Any]) -> str:
    return f"data: {json.dumps(event)}\n\n"


class EventBus:
    """Pub/sub event bus keyed by review_item_id with replay buffer.

    Each item keeps its last ``buffer_size`` events for late subscribers.
    The buffer is dropped once the item completes.
    """

    def __init__(self, buffer_size: int = BUFFER_SIZE) -> None:
        self.buffer_size = buffer_size
        self._subscribers: dict[str, list[asyncio.Queue]] = {}
        self._buffer: dict[str, deque[dict[str, Any]]] = {}

    async def emit(self, review_item_id: str, event_type: str, data: dict[str, Any], timestamp: datetime) -> None:
        """Push an event to all subscribers and buffer it."""
        event = {
            "type": event_type,
            "review_item_id": review_item_id,
            "data": data,
            "timestamp": timestamp.isoformat(),
        }
        buffer = self._buffer.setdefault(review_item_id, deque(maxlen=self.buffer_size))
        buffer.append(event)
        for queue in self._subscribers.get(review_item_id, []):
            queue.put_nowait(event)

    def buffered(self, review_item_id: str) -> list[dict[str, Any]]:
        return list(self._buffer.get(review_item_id, []))

    async def subscribe(self, review_item_id: str) -> AsyncGenerator[str, None]:
        """Yield SSE-formatted events. Replays buffer then streams live."""
        queue: asyncio.Queue = asyncio.Queue()

        # Registering and snapshotting happen without an await in between, so
        # everything that reaches the queue is newer than the snapshot
        self._subscribers.setdefault(review_item_id, []).append(queue)
        buffered = self.buffered(review_item_id)

        try:
            for event in buffered:
                yield sse_frame(event)
                if event.get("type") == TERMINAL_EVENT:
                    return

            while True:
                event = await queue.get()
                yield sse_frame(event)
                if event.get("type") == TERMINAL_EVENT:
                    break
        finally:
            subs = self._subscribers.get(review_item_id, [])
            if queue in subs:
                subs.remove(queue)
            if review_item_id in self._subscribers and not self._subscribers[review_item_id]:
                del self._subscribers[review_item_id]

    def cleanup(self, review_item_id: str) -> None:
        """Remove buffered events for a review item to free memory."""
        self._buffer.pop(review_item_id, None)


async def completed_stream(review_item_id: str, completed_at: datetime | None) -> AsyncGenerator[str, None]:
    """Stream for an item that has already completed: the terminal event only."""
    yield sse_frame(
        {
            "type": TERMINAL_EVENT,
            "review_item_id": review_item_id,
            "data": {"new_state": str(Completed()), "owner": Completed().owner.label},
            "timestamp": completed_at.isoformat() if completed_at else None,
        }
    )


class EventBusNotificationSink:
    """Notification sink that feeds state changes into the SSE event bus."""

    def __init__(self, bus: EventBus):
        self.bus = bus

    async def on_state_changed(self, review_item_id, previous_state, new_state, triggered_by, timestamp):
        completed = isinstance(new_state, Completed)
        await self.bus.emit(
            review_item_id,
            TERMINAL_EVENT if completed else "state_changed",
            {
                "previous_state": str(previous_state),
                "new_state": str(new_state),
                "owner": new_state.owner.label,
                "triggered_by": triggered_by,
            },
            timestamp,
        )
        if completed:
            # Live subscribers already have the terminal event; late ones get completed_stream
            self.bus.cleanup(review_item_id)


# Global singleton
event_bus = EventBus()
