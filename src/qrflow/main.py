from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.asyncio import Redis

from qrflow.api.deps import app_state
from qrflow.api.events import EventBusNotificationSink, event_bus
from qrflow.api.routes import router as api_router
from qrflow.config import settings
from qrflow.errors import InvalidTeam, QueryNotFound, ReviewItemNotFound, WorkflowError
from qrflow.infra.notifications import (
    DeduplicatingNotificationSink,
    InMemoryAuditLog,
    LoggingAuditSink,
    LoggingNotificationSink,
    NotificationDeduplicator,
    NotificationDispatcher,
)
from qrflow.infra.redis import RedisWorkflowStore
from qrflow.infra.store import InMemoryWorkflowStore
from qrflow.review.router import router as review_router
from qrflow.workflow.coordinator import WorkflowCoordinator
from qrflow.workflow.teams import TeamRegistry

logger = logging.getLogger(__name__)


async def _build_store():
    if settings.storage_backend != "redis":
        return InMemoryWorkflowStore()

    logger.info("Initializing Redis connection...")
    try:
        redis = Redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
        await redis.ping()
        logger.info(f"✓ Redis connected: {settings.redis_url.split('@')[-1]}")
    except Exception as e:
        logger.warning(f"Redis unavailable, falling back to in-memory store: {e}")
        return InMemoryWorkflowStore()

    app_state.redis = redis
    return RedisWorkflowStore(
        redis,
        key_prefix=settings.redis_key_prefix,
        lock_timeout=settings.lock_timeout_seconds,
        lock_blocking_timeout=settings.lock_blocking_timeout_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logging.basicConfig(level=settings.log_level)

    app_state.store = await _build_store()
    app_state.audit_log = InMemoryAuditLog()
    deduplicator = NotificationDeduplicator(
        window_seconds=settings.notification_dedup_window_seconds,
        retention_seconds=settings.notification_dedup_retention_seconds,
    )
    app_state.dispatcher = NotificationDispatcher(
        notification_sinks=[
            DeduplicatingNotificationSink(LoggingNotificationSink(), deduplicator),
            EventBusNotificationSink(event_bus),
        ],
        audit_sinks=[LoggingAuditSink(), app_state.audit_log],
    )
    await app_state.dispatcher.start()

    app_state.coordinator = WorkflowCoordinator(
        app_state.store,
        TeamRegistry(settings.originator_team, settings.responding_teams),
        dispatcher=app_state.dispatcher,
        query_overdue_days=settings.query_overdue_days,
    )
    logger.info(
        f"✓ Workflow engine ready ({type(app_state.store).__name__}, "
        f"teams: {', '.join(settings.responding_teams)})"
    )

    yield

    logger.info("Shutting down...")
    await app_state.dispatcher.stop()
    await app_state.store.close()
    if app_state.redis:
        logger.info("✓ Redis connection closed")
    app_state.coordinator = None
    app_state.store = None
    app_state.redis = None


app = FastAPI(
    title="qrflow - Query Routing Workflow",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_STATUS = {
    ReviewItemNotFound: 404,
    QueryNotFound: 404,
    InvalidTeam: 422,
}


@app.exception_handler(WorkflowError)
async def _workflow_error_handler(request: Request, exc: WorkflowError):
    """Translate core failures into structured JSON errors."""
    status_code = ERROR_STATUS.get(type(exc), 409)
    logger.info(f"{request.method} {request.url.path} rejected: {exc}")
    return JSONResponse(status_code=status_code, content={"error": exc.code, "detail": exc.details()})


app.include_router(api_router, prefix="/api")
app.include_router(review_router, prefix="/api/queries")
