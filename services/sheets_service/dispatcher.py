"""
In-process background queue for post-creation Sheets sync.

Order creation enqueues the order id and returns; a single worker task drains
the queue with its own database session per job. Anything the worker fails
to sync stays synced=false and is picked up by the retry sweep.
"""
import asyncio

import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from services.order_service.repository import OrderRepository
from shared.observability import livey_sync_queue_depth

from .sync import SheetsSyncService

logger = structlog.get_logger(__name__)

DEFAULT_QUEUE_SIZE = 1000


class SyncDispatcher:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        sync_service: SheetsSyncService,
        maxsize: int = DEFAULT_QUEUE_SIZE,
    ):
        self.session_factory = session_factory
        self.sync_service = sync_service
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=maxsize)
        self._worker: asyncio.Task | None = None

    def enqueue(self, order_id: str) -> bool:
        """Schedule a sync without waiting. Returns False when the queue is full."""
        try:
            self._queue.put_nowait(order_id)
        except asyncio.QueueFull:
            logger.warning("sync_queue_full", order_id=order_id)
            return False
        livey_sync_queue_depth.set(self._queue.qsize())
        return True

    def start(self):
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run())
            logger.info("sync_dispatcher_started")

    async def stop(self):
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            logger.info("sync_dispatcher_stopped", pending=self._queue.qsize())
        self._worker = None

    async def join(self):
        """Wait until every queued job has been processed."""
        await self._queue.join()

    async def _run(self):
        while True:
            order_id = await self._queue.get()
            try:
                await self._sync(order_id)
            except Exception as e:
                # Already counted and logged by the sync service; the sweep retries it
                logger.error("background_sync_failed", order_id=order_id, error=str(e))
            finally:
                self._queue.task_done()
                livey_sync_queue_depth.set(self._queue.qsize())

    async def _sync(self, order_id: str):
        async with self.session_factory() as db:
            order = await OrderRepository.get_order(db, order_id)
            if order is None:
                logger.warning("background_sync_order_missing", order_id=order_id)
                return
            await self.sync_service.sync_order(db, order)
