"""REST endpoints that trigger review syncs and post owner replies.

- POST /connections/{connection_id}/sync: "Sync Now" for one connection
- POST /sync/run: cron entry point, walks every connection (Bearer CRON_SECRET)
- POST /reviews/{review_id}/reply: post a reply through the provider

Sync error classes map to HTTP statuses in one place (_http_error). The
connection's sync_status has already been persisted when a sync error
reaches this layer.
"""

from __future__ import annotations

import hmac
from typing import Any

import structlog
from fastapi import APIRouter, Header, HTTPException, Request, status
from pydantic import BaseModel, Field

from src.reviewsync.config import get_settings
from src.reviewsync.core.redis import SyncLease
from src.reviewsync.sync.errors import (
    ConnectionNotFoundError,
    PersistenceError,
    ProviderApiError,
    ReplyNotSupportedError,
    ReviewNotFoundError,
    SyncError,
    SyncInProgressError,
    TokenError,
)
from src.reviewsync.sync.schemas import CanonicalReview, SyncResult

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1", tags=["sync"])


class ReplyRequest(BaseModel):
    text: str = Field(min_length=1, max_length=4096)


class RunSummary(BaseModel):
    """Response of the cron run endpoint."""

    connections: int
    synced: int
    failed: int
    skipped: int
    results: list[dict[str, Any]]


# ── Dependency Injection Helpers ─────────────────────────────────────────────


def _get_orchestrator(request: Request) -> Any:
    """Retrieve SyncOrchestrator from app.state, 503 if not available."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="SyncOrchestrator is not available. Sync engine may not have initialized.",
        )
    return orchestrator


def _get_scheduler(request: Request) -> Any:
    """Retrieve ReviewSyncScheduler from app.state, 503 if not available."""
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sync scheduler is not available. Sync engine may not have initialized.",
        )
    return scheduler


def _get_lease(request: Request) -> SyncLease:
    lease = getattr(request.app.state, "sync_lease", None)
    return lease if lease is not None else SyncLease(None, 0)


def _http_error(exc: SyncError) -> HTTPException:
    """Map a sync error onto the HTTP status the client should see."""
    if isinstance(exc, (ConnectionNotFoundError, ReviewNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Not found: {exc}")
    if isinstance(exc, TokenError):
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "reconnect_required", "reason": exc.reason.value},
        )
    if isinstance(exc, ProviderApiError):
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error": "provider_error", "platform": exc.platform, "category": exc.category.value},
        )
    if isinstance(exc, ReplyNotSupportedError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, SyncInProgressError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, PersistenceError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Storage unavailable")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def _verify_cron_secret(authorization: str | None) -> None:
    secret = get_settings().CRON_SECRET
    expected = f"Bearer {secret}"
    if not secret or not authorization or not hmac.compare_digest(authorization, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


# ── Endpoints ────────────────────────────────────────────────────────────────


@router.post("/connections/{connection_id}/sync", response_model=SyncResult)
async def sync_connection(connection_id: str, request: Request) -> SyncResult:
    """Run a sync for one connection now."""
    orchestrator = _get_orchestrator(request)
    lease = _get_lease(request)

    holder = await lease.acquire(connection_id)
    try:
        if holder is None:
            raise SyncInProgressError(f"A sync is already running for connection {connection_id}")
        try:
            return await orchestrator.sync(connection_id)
        finally:
            await lease.release(connection_id, holder)
    except SyncError as exc:
        logger.warning(
            "api.sync_failed",
            connection_id=connection_id,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        raise _http_error(exc) from exc


@router.post("/sync/run", response_model=RunSummary)
async def run_all(
    request: Request,
    authorization: str | None = Header(default=None),
) -> RunSummary:
    """Cron entry point: sync every syncable connection sequentially."""
    _verify_cron_secret(authorization)
    scheduler = _get_scheduler(request)

    report = await scheduler.run_once()
    return RunSummary(
        connections=len(report.results),
        synced=report.synced,
        failed=report.failed,
        skipped=report.skipped,
        results=[r.model_dump(mode="json") for r in report.results],
    )


@router.post("/reviews/{review_id}/reply", response_model=CanonicalReview)
async def reply_to_review(review_id: str, body: ReplyRequest, request: Request) -> CanonicalReview:
    """Post an owner reply via the provider API and record it."""
    orchestrator = _get_orchestrator(request)
    try:
        return await orchestrator.reply(review_id, body.text)
    except SyncError as exc:
        logger.warning(
            "api.reply_failed",
            review_id=review_id,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        raise _http_error(exc) from exc
