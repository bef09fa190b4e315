"""Application state shared by the routers."""

from __future__ import annotations

from fastapi import HTTPException
from redis.asyncio import Redis

from qrflow.infra.notifications import InMemoryAuditLog, NotificationDispatcher
from qrflow.infra.store import WorkflowStore
from qrflow.workflow.coordinator import WorkflowCoordinator


class AppState:
    """Global application state for dependency injection."""
    redis: Redis | None = None
    store: WorkflowStore | None = None
    dispatcher: NotificationDispatcher | None = None
    audit_log: InMemoryAuditLog | None = None
    coordinator: WorkflowCoordinator | None = None


app_state = AppState()


def get_coordinator() -> WorkflowCoordinator:
    if app_state.coordinator is None:
        raise HTTPException(status_code=503, detail="Workflow engine not initialized")
    return app_state.coordinator


def get_audit_log() -> InMemoryAuditLog:
    if app_state.audit_log is None:
        raise HTTPException(status_code=503, detail="Audit log not initialized")
    return app_state.audit_log
