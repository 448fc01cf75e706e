"""Background scheduler for periodic review syncs.

Provides a lightweight APScheduler wrapper with one interval job that walks
every connection sequentially. Connections that need user re-authorization
are skipped, as are connections whose sync lease is held elsewhere. The same
run_once() backs the cron HTTP endpoint.

Exports:
    ReviewSyncScheduler: Async scheduler for periodic connection syncs.
"""

from __future__ import annotations

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
import structlog

from src.reviewsync.core.redis import SyncLease
from src.reviewsync.sync.orchestrator import SyncOrchestrator
from src.reviewsync.sync.repository import SyncRepository
from src.reviewsync.sync.schemas import (
    ConnectionRunResult,
    PlatformConnection,
    RunOutcome,
    SyncRunReport,
)
from src.reviewsync.sync.status import is_syncable

logger = structlog.get_logger(__name__)


class ReviewSyncScheduler:
    """Runs a sync for every syncable connection on a fixed interval.

    Args:
        orchestrator: SyncOrchestrator used for each connection.
        repository: Source of the connections to walk.
        lease: Per-connection lease shared with the HTTP trigger.
        interval_minutes: Minutes between runs. 0 disables start().
    """

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        repository: SyncRepository,
        lease: SyncLease,
        interval_minutes: int = 60,
    ) -> None:
        self._orchestrator = orchestrator
        self._repo = repository
        self._lease = lease
        self._interval = interval_minutes
        self._scheduler: AsyncIOScheduler | None = None
        self._started = False

    @property
    def running(self) -> bool:
        return self._started

    def start(self) -> bool:
        """Start the interval job. Returns False when disabled by configuration."""
        if self._interval <= 0:
            logger.info("sync_scheduler.disabled", reason="SYNC_INTERVAL_MINUTES is 0")
            return False

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(minutes=self._interval),
            id="review_sync_all_connections",
            name="Sync reviews for all connections",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self._interval * 60,
        )
        self._scheduler.start()
        self._started = True
        logger.info("sync_scheduler.started", interval_minutes=self._interval)
        return True

    async def _sync_one(self, connection: PlatformConnection) -> ConnectionRunResult:
        base = {"connection_id": connection.id, "platform": connection.platform}

        if not is_syncable(connection.sync_status):
            return ConnectionRunResult(
                **base,
                outcome=RunOutcome.SKIPPED,
                error=f"reauthorization required ({connection.sync_status.value})",
            )

        holder = await self._lease.acquire(connection.id)
        if holder is None:
            return ConnectionRunResult(**base, outcome=RunOutcome.SKIPPED, error="sync in progress")

        try:
            result = await self._orchestrator.sync(connection.id)
        except Exception as exc:
            # Status is already persisted by the orchestrator; keep walking.
            logger.warning(
                "sync_scheduler.connection_failed",
                connection_id=connection.id,
                platform=connection.platform.value,
                error=str(exc),
            )
            return ConnectionRunResult(**base, outcome=RunOutcome.FAILED, error=str(exc))
        finally:
            await self._lease.release(connection.id, holder)

        return ConnectionRunResult(**base, outcome=RunOutcome.SYNCED, result=result)

    async def run_once(self) -> SyncRunReport:
        """Sync every connection once, sequentially, and report per connection."""
        logger.info("sync_scheduler.run_started")
        report = SyncRunReport()
        for connection in await self._repo.list_connections():
            report.results.append(await self._sync_one(connection))

        logger.info(
            "sync_scheduler.run_completed",
            connections=len(report.results),
            synced=report.synced,
            failed=report.failed,
            skipped=report.skipped,
        )
        return report

    def stop(self) -> None:
        """Shut down the scheduler."""
        if self._scheduler and self._started:
            self._scheduler.shutdown(wait=False)
            self._started = False
            logger.info("sync_scheduler.stopped")


__all__ = ["ReviewSyncScheduler"]
