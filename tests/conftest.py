"""Shared fixtures for the routing engine tests."""

from datetime import datetime, timedelta, timezone

import pytest

from qrflow.infra.notifications import InMemoryAuditLog, NotificationDispatcher
from qrflow.infra.store import InMemoryWorkflowStore
from qrflow.workflow.coordinator import WorkflowCoordinator
from qrflow.workflow.teams import TeamRegistry


class FakeClock:
    """Manually advanced clock returning timezone-aware datetimes."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now

    def set(self, hour: int, minute: int = 0) -> datetime:
        self.now = self.now.replace(hour=hour, minute=minute)
        return self.now


class RecordingNotificationSink:
    def __init__(self):
        self.events = []

    async def on_state_changed(self, review_item_id, previous_state, new_state, triggered_by, timestamp):
        self.events.append((review_item_id, str(previous_state), str(new_state), triggered_by))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def teams():
    return TeamRegistry("PLANT", ["A", "B", "C", "CQS", "TECH", "JVC"])


@pytest.fixture
def store():
    return InMemoryWorkflowStore()


@pytest.fixture
def notifications():
    return RecordingNotificationSink()


@pytest.fixture
def audit_log():
    return InMemoryAuditLog()


@pytest.fixture
def dispatcher(notifications, audit_log):
    return NotificationDispatcher(notification_sinks=[notifications], audit_sinks=[audit_log])


@pytest.fixture
def coordinator(store, teams, dispatcher, clock):
    return WorkflowCoordinator(store, teams, dispatcher=dispatcher, clock=clock)


@pytest.fixture
async def item(coordinator):
    return await coordinator.open_review_item(
        "plant.user",
        project_code="P-100",
        material_code="R12345",
        plant_code="1001",
        material_name="Sodium hypochlorite",
    )
