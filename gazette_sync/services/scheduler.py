"""Periodic trigger for the sync engine"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from gazette_sync.core.config import settings
from gazette_sync.db.models import SyncTrigger, utcnow
from gazette_sync.services.config_service import SyncConfig
from gazette_sync.services.sync_engine import GazetteSyncEngine, SyncRunHandle

logger = logging.getLogger(__name__)


class SyncScheduler:
    """
    Background loop that feeds the engine startup and scheduled triggers.

    The sync policy is re-read every tick, so changing auto_sync or the
    interval takes effect on the next tick without a restart. The scheduler
    never waits for a run to finish; overlapping ticks coalesce in the engine.
    """

    def __init__(
        self,
        engine: GazetteSyncEngine,
        load_config: Optional[Callable[[], Awaitable[SyncConfig]]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
        startup_delay: Optional[float] = None,
    ):
        self.engine = engine
        self.load_config = load_config or engine.load_config
        self.sleep = sleep
        self.clock = clock
        self.startup_delay = settings.sync_startup_delay_seconds if startup_delay is None else startup_delay
        self.next_run_at: Optional[datetime] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Sync scheduler started (startup delay {self.startup_delay}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self.next_run_at = None
        logger.info("Sync scheduler stopped")

    def trigger_now(self) -> SyncRunHandle:
        """Manual trigger, same coalescing rules as the loop"""
        return self.engine.trigger(SyncTrigger.MANUAL)

    async def _current_config(self) -> SyncConfig:
        try:
            return await self.load_config()
        except Exception as e:
            logger.exception(f"Scheduler could not load sync config, using defaults: {e}")
            return SyncConfig()

    async def _loop(self) -> None:
        # Grace period so the app finishes booting before the first run
        await self.sleep(self.startup_delay)

        config = await self._current_config()
        if config.auto_sync:
            self.engine.trigger(SyncTrigger.STARTUP)

        while True:
            interval = config.sync_interval_hours * 3600
            self.next_run_at = self.clock() + timedelta(seconds=interval)
            await self.sleep(interval)

            config = await self._current_config()
            if not config.auto_sync:
                logger.info("Auto sync disabled, skipping scheduled run")
                continue
            self.engine.trigger(SyncTrigger.SCHEDULED)
