"""
Background polling of the aggregator bridge.

Runs one sync immediately and then one every
AGGREGATOR_SYNC_INTERVAL_SECONDS, as an asyncio task owned by the FastAPI
lifespan. Webhook pushes may overlap a running sync; dedup makes that safe.
"""

import asyncio

from shared.config.logging import aggregator_logger as logger
from shared.config.settings import settings
from .sync_engine import AggregatorSyncEngine, get_sync_engine


class AggregatorSyncLoop:
    """Periodic sync_orders() runner with graceful shutdown."""

    def __init__(
        self,
        engine: AggregatorSyncEngine | None = None,
        interval_seconds: float | None = None,
    ):
        self._engine = engine
        self._interval = interval_seconds or settings.aggregator_sync_interval_seconds
        self._running = False
        self._task: asyncio.Task | None = None
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            logger.warning("Aggregator sync loop already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Aggregator sync loop started", interval_seconds=self._interval)

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Aggregator sync loop stopped")

    async def _run_loop(self) -> None:
        engine = self._engine or get_sync_engine()
        while self._running:
            try:
                await engine.sync_orders()
            except Exception as e:
                logger.error("Aggregator sync run failed", error=str(e), error_type=type(e).__name__)
            self.runs += 1
            await asyncio.sleep(self._interval)


_loop: AggregatorSyncLoop | None = None


def get_sync_loop() -> AggregatorSyncLoop:
    global _loop
    if _loop is None:
        _loop = AggregatorSyncLoop()
    return _loop


async def start_sync_loop() -> None:
    """Start polling (call in FastAPI lifespan startup)."""
    await get_sync_loop().start()


async def stop_sync_loop() -> None:
    """Stop polling (call in FastAPI lifespan shutdown)."""
    await get_sync_loop().stop()
