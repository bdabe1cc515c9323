"""
Retry sweep for orders that never made it to the seller's spreadsheet.

Triggered by an external scheduler through the cron endpoint. Each order waits
``300 * 3 ** retry_count`` seconds after its last attempt before it is tried
again, and is given up on after MAX_SYNC_RETRIES attempts.
"""
from dataclasses import asdict, dataclass
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from services.order_service.repository import OrderRepository
from services.sheets_service.sync import SheetsSyncService
from shared.observability import livey_sync_sweep_duration_seconds
from shared.time_utils import as_utc, utcnow

logger = structlog.get_logger(__name__)

BACKOFF_BASE_SECONDS = 300
BACKOFF_FACTOR = 3
MAX_SYNC_RETRIES = 10
SWEEP_BATCH_SIZE = 50


def backoff_seconds(retry_count: int) -> int:
    """5 min, 15 min, 45 min, 2h15, ..."""
    return BACKOFF_BASE_SECONDS * BACKOFF_FACTOR ** retry_count


def is_retry_due(order, now: datetime | None = None) -> bool:
    if order.updated_at is None:
        return True
    now = now or utcnow()
    elapsed = (now - as_utc(order.updated_at)).total_seconds()
    return elapsed >= backoff_seconds(order.sync_retry_count)


@dataclass
class SweepResult:
    total: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0

    @property
    def message(self) -> str:
        return (
            f"Processed {self.processed} orders: {self.succeeded} succeeded, "
            f"{self.failed} failed, {self.skipped} skipped (backoff)"
        )

    def to_response(self) -> dict:
        return {"success": True, **asdict(self), "message": self.message}


class SyncRetryService:
    @staticmethod
    async def sweep(db: AsyncSession, sync_service: SheetsSyncService, now: datetime | None = None) -> SweepResult:
        """Retry due unsynced orders one at a time, oldest first."""
        now = now or utcnow()
        result = SweepResult()

        with livey_sync_sweep_duration_seconds.time():
            candidates = await OrderRepository.list_unsynced(db, MAX_SYNC_RETRIES, SWEEP_BATCH_SIZE)
            result.total = len(candidates)
            due_ids = [order.id for order in candidates if is_retry_due(order, now)]
            result.skipped = result.total - len(due_ids)

            # Reloaded right before each attempt: a failed sync may have rolled the
            # session back, and the background worker may have synced it meanwhile
            for order_id in due_ids:
                order = await OrderRepository.get_order(db, order_id, fresh=True)
                if order is None or order.synced:
                    result.skipped += 1
                    continue

                result.processed += 1
                try:
                    await sync_service.sync_order(db, order)
                    result.succeeded += 1
                except Exception as e:
                    result.failed += 1
                    logger.warning("sweep_order_failed", order_id=order_id, error=str(e))

        logger.info("sync_sweep_completed", **asdict(result))
        return result
