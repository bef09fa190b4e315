"""Tests for event dispatch, duplicate suppression and the SSE event bus."""

import asyncio
import json
import logging
from datetime import datetime, timezone

import pytest

from qrflow.api.events import BUFFER_SIZE, EventBus, EventBusNotificationSink, completed_stream
from qrflow.infra.notifications import (
    DeduplicatingNotificationSink,
    InMemoryAuditLog,
    NotificationDeduplicator,
    NotificationDispatcher,
)
from qrflow.models.events import QueryResolvedEvent, StateChangeEvent
from qrflow.models.state import Completed, OriginatorPending, Pending

from tests.conftest import RecordingNotificationSink

NOW = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)


class SteppingClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class ExplodingSink:
    async def on_state_changed(self, *args):
        raise RuntimeError("smtp down")


def change(item_id="item-1", previous=None, new=None, by="CQS"):
    return StateChangeEvent(
        review_item_id=item_id,
        previous_state=previous or OriginatorPending(),
        new_state=new or Pending(team="CQS"),
        triggered_by=by,
        timestamp=NOW,
    )


# =============================================================================
# NotificationDeduplicator
# =============================================================================


class TestNotificationDeduplicator:
    def test_suppresses_within_window(self):
        clock = SteppingClock()
        dedup = NotificationDeduplicator(window_seconds=30, retention_seconds=300, clock=clock)

        assert dedup.should_send("k")
        clock.now = 29.9
        assert not dedup.should_send("k")

    def test_allows_after_window(self):
        clock = SteppingClock()
        dedup = NotificationDeduplicator(window_seconds=30, retention_seconds=300, clock=clock)

        assert dedup.should_send("k")
        clock.now = 30.0
        assert dedup.should_send("k")

    def test_keys_are_independent(self):
        dedup = NotificationDeduplicator(clock=SteppingClock())

        assert dedup.should_send("a")
        assert dedup.should_send("b")

    def test_prunes_old_entries(self):
        clock = SteppingClock()
        dedup = NotificationDeduplicator(window_seconds=30, retention_seconds=300, clock=clock)
        dedup.should_send("old")
        clock.now = 301
        dedup.should_send("new")

        assert len(dedup) == 1

    def test_rejects_retention_shorter_than_window(self):
        with pytest.raises(ValueError):
            NotificationDeduplicator(window_seconds=60, retention_seconds=10)


async def test_deduplicating_sink_forwards_once():
    inner = RecordingNotificationSink()
    sink = DeduplicatingNotificationSink(inner, NotificationDeduplicator(clock=SteppingClock()))

    for _ in range(3):
        await sink.on_state_changed("item-1", OriginatorPending(), Pending(team="A"), "PLANT", NOW)
    await sink.on_state_changed("item-1", Pending(team="A"), OriginatorPending(), "A", NOW)

    assert [(prev, new) for _, prev, new, _ in inner.events] == [
        ("ORIGINATOR_PENDING", "PENDING(A)"),
        ("PENDING(A)", "ORIGINATOR_PENDING"),
    ]


# =============================================================================
# NotificationDispatcher
# =============================================================================


class TestNotificationDispatcher:
    async def test_delivers_in_publish_order(self):
        sink = RecordingNotificationSink()
        dispatcher = NotificationDispatcher(notification_sinks=[sink])
        await dispatcher.start()

        dispatcher.publish(change(new=Pending(team="A")))
        dispatcher.publish(change(previous=Pending(team="A"), new=Pending(team="B")))
        dispatcher.publish(change(previous=Pending(team="B"), new=OriginatorPending()))
        await dispatcher.stop()

        assert [new for _, _, new, _ in sink.events] == ["PENDING(A)", "PENDING(B)", "ORIGINATOR_PENDING"]

    async def test_flush_without_worker_delivers_inline(self):
        audit = InMemoryAuditLog()
        dispatcher = NotificationDispatcher(audit_sinks=[audit])

        dispatcher.publish(QueryResolvedEvent(query_id=1, review_item_id="item-1", resolved_by="A", timestamp=NOW))
        assert dispatcher.pending == 1
        await dispatcher.flush()

        assert dispatcher.pending == 0
        assert [e.query_id for e in audit.for_item("item-1")] == [1]

    async def test_failing_sink_is_logged_and_skipped(self, caplog):
        sink = RecordingNotificationSink()
        dispatcher = NotificationDispatcher(notification_sinks=[ExplodingSink(), sink])

        dispatcher.publish(change())
        with caplog.at_level(logging.WARNING):
            await dispatcher.flush()

        assert len(sink.events) == 1
        assert "smtp down" in caplog.text


# =============================================================================
# EventBus
# =============================================================================


def decode(frame):
    return json.loads(frame.removeprefix("data: ").strip())


async def next_event(stream):
    return decode(await asyncio.wait_for(stream.__anext__(), timeout=1))


class TestEventBus:
    async def test_replays_buffer_then_streams_until_completion(self):
        bus = EventBus()
        sink = EventBusNotificationSink(bus)
        await sink.on_state_changed("item-1", OriginatorPending(), Pending(team="CQS"), "PLANT", NOW)
        await sink.on_state_changed("item-1", Pending(team="CQS"), OriginatorPending(), "CQS", NOW)

        stream = bus.subscribe("item-1")
        replayed = [await next_event(stream), await next_event(stream)]
        await sink.on_state_changed("item-1", OriginatorPending(), Completed(), "plant.user", NOW)
        rest = [decode(frame) async for frame in stream]

        assert [e["type"] for e in replayed + rest] == ["state_changed", "state_changed", "review_completed"]
        assert replayed[0]["data"] == {
            "previous_state": "ORIGINATOR_PENDING",
            "new_state": "PENDING(CQS)",
            "owner": "CQS",
            "triggered_by": "PLANT",
        }

    async def test_event_emitted_during_replay_is_delivered(self):
        bus = EventBus()
        for n in (1, 2):
            await bus.emit("item-1", "state_changed", {"n": n}, NOW)

        stream = bus.subscribe("item-1")
        first = await next_event(stream)
        await bus.emit("item-1", "state_changed", {"n": 3}, NOW)
        second = await next_event(stream)
        third = await next_event(stream)
        await stream.aclose()

        assert [e["data"]["n"] for e in (first, second, third)] == [1, 2, 3]

    async def test_buffer_released_after_completion(self):
        bus = EventBus()
        sink = EventBusNotificationSink(bus)
        await sink.on_state_changed("item-1", OriginatorPending(), Pending(team="A"), "PLANT", NOW)
        await sink.on_state_changed("item-1", Pending(team="A"), OriginatorPending(), "A", NOW)
        assert len(bus.buffered("item-1")) == 2

        await sink.on_state_changed("item-1", OriginatorPending(), Completed(), "plant.user", NOW)

        assert bus.buffered("item-1") == []
        assert "item-1" not in bus._buffer

    async def test_buffer_keeps_latest_events_only(self):
        bus = EventBus()
        for n in range(BUFFER_SIZE + 5):
            await bus.emit("item-1", "state_changed", {"n": n}, NOW)

        buffered = bus.buffered("item-1")
        assert len(buffered) == BUFFER_SIZE
        assert buffered[0]["data"]["n"] == 5

    async def test_completed_stream_is_single_terminal_event(self):
        frames = [decode(frame) async for frame in completed_stream("item-1", NOW)]

        assert [e["type"] for e in frames] == ["review_completed"]
        assert frames[0]["data"]["new_state"] == "COMPLETED"

    def test_cleanup_drops_buffer(self):
        bus = EventBus()
        bus._buffer["item-1"] = [{"type": "state_changed"}]

        bus.cleanup("item-1")

        assert bus.buffered("item-1") == []
