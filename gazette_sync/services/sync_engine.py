"""DJEN sync engine: fetch -> reconcile -> persist, one run at a time"""
import asyncio
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional

import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from gazette_sync.core.config import settings
from gazette_sync.db.models import SyncTrigger, utcnow
from gazette_sync.services.communication_store import CommunicationStore
from gazette_sync.services.config_service import ConfigService, SyncConfig
from gazette_sync.services.gazette_client import AttorneyFetchResult, GazetteClient
from gazette_sync.services.gazette_records import MonitoredAttorney
from gazette_sync.services.notification_bridge import (
    LoggingNotificationBridge, NewCommunicationsSignal, NotificationBridge
)
from gazette_sync.services.reconciliation_service import ReconciliationService, ReconciliationStats
from gazette_sync.services.sync_ledger import RunOutcome, SyncAlreadyRunning, SyncLedger, status_for

logger = structlog.get_logger(__name__)

ClientFactory = Callable[[SyncConfig], GazetteClient]

MAX_REPORTED_ERRORS = 10


def default_client_factory(config: SyncConfig) -> GazetteClient:
    """GazetteClient honoring the per-run timeout and retry budget"""
    return GazetteClient(
        timeout=config.api_timeout_seconds,
        max_retries=config.max_retries,
    )


def empty_summary(errors: int = 0) -> Dict[str, int]:
    return {"total": 0, "synced": 0, "updated": 0, "errors": errors}


class SyncRunHandle:
    """
    Reference to an in-flight (or finished) sync run.

    Returned immediately by GazetteSyncEngine.trigger(); run_id is filled in
    once the ledger row exists. skipped means another process already held
    the running row, and run_id then points at that run.
    """

    def __init__(self, trigger: SyncTrigger, requested_at: datetime):
        self.trigger = trigger
        self.requested_at = requested_at
        self.run_id: Optional[int] = None
        self.skipped = False
        # Filled in while the run reconciles, so an abandoned run still reports progress
        self.stats = ReconciliationStats()
        self.date_range_start: Optional[date] = None
        self.date_range_end: Optional[date] = None
        self.started = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    async def wait_started(self) -> Optional[int]:
        """Wait for the ledger row only, not for the run"""
        await self.started.wait()
        return self.run_id

    async def wait(self) -> Dict[str, int]:
        """Wait for the run to finish and return its summary"""
        # shield: a cancelled waiter must not cancel the shared run
        return await asyncio.shield(self._task)


class GazetteSyncEngine:
    """
    Runs DJEN synchronization for every monitored attorney.

    Single-flight: while a run is active, trigger() hands back the same
    handle instead of starting another run. The check-and-set happens
    without an await in between, so it is atomic on the event loop.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        ledger: Optional[SyncLedger] = None,
        client_factory: ClientFactory = default_client_factory,
        notifier: Optional[NotificationBridge] = None,
        clock: Callable[[], datetime] = utcnow,
        max_concurrent_attorneys: Optional[int] = None,
        watchdog_multiplier: Optional[int] = None,
        max_pages: Optional[int] = None,
        shutdown_grace_seconds: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.ledger = ledger or SyncLedger(session_factory, clock=clock)
        self.client_factory = client_factory
        self.notifier = notifier or LoggingNotificationBridge()
        self.max_concurrent_attorneys = max_concurrent_attorneys or settings.sync_max_concurrent_attorneys
        self.watchdog_multiplier = watchdog_multiplier or settings.sync_watchdog_multiplier
        self.max_pages = max_pages or settings.gazette_max_pages
        self.shutdown_grace_seconds = (
            settings.sync_shutdown_grace_seconds if shutdown_grace_seconds is None else shutdown_grace_seconds
        )
        self._current: Optional[SyncRunHandle] = None

    @property
    def is_running(self) -> bool:
        return self._current is not None and not self._current.done

    @property
    def current(self) -> Optional[SyncRunHandle]:
        return self._current if self.is_running else None

    def trigger(self, trigger: SyncTrigger = SyncTrigger.MANUAL) -> SyncRunHandle:
        """Start a run, or return the in-flight one. Never blocks."""
        if self.is_running:
            logger.info(
                "sync_trigger_coalesced",
                trigger=trigger.value,
                run_id=self._current.run_id,
            )
            return self._current

        handle = SyncRunHandle(trigger, self.clock())
        self._current = handle
        handle._task = asyncio.create_task(self._run(handle))
        return handle

    async def sync_pending_processes(self, trigger: SyncTrigger = SyncTrigger.MANUAL) -> Dict[str, int]:
        """Run (or join) a sync and return {total, synced, updated, errors}"""
        return await self.trigger(trigger).wait()

    def watchdog_ceiling(self, config: SyncConfig) -> float:
        """Seconds after which a run is declared stuck"""
        per_request = config.api_timeout_seconds * (config.max_retries + 1)
        attorneys = max(1, len(config.monitored_attorneys()))
        return self.watchdog_multiplier * per_request * self.max_pages * attorneys

    async def load_config(self) -> SyncConfig:
        async with self.session_factory() as session:
            return await ConfigService(session).load_sync_config()

    async def shutdown(self, grace_seconds: Optional[float] = None) -> None:
        """Give the in-flight run grace_seconds to finish, then cancel it"""
        handle = self.current
        if handle is None:
            return
        grace = self.shutdown_grace_seconds if grace_seconds is None else grace_seconds
        try:
            await asyncio.wait_for(asyncio.shield(handle._task), timeout=grace)
            return
        except asyncio.TimeoutError:
            pass

        logger.warning("sync_run_cancelled_on_shutdown", run_id=handle.run_id, grace_seconds=grace)
        handle._task.cancel()
        try:
            await handle._task
        except asyncio.CancelledError:
            pass

    def _partial_outcome(self, handle: SyncRunHandle) -> RunOutcome:
        stats = handle.stats
        return RunOutcome(
            items_found=stats.total,
            items_saved=stats.synced + stats.updated,
            error_count=stats.errors,
            date_range_start=handle.date_range_start,
            date_range_end=handle.date_range_end,
        )

    async def _run(self, handle: SyncRunHandle) -> Dict[str, int]:
        log = logger.bind(trigger=handle.trigger.value)
        try:
            config_error: Optional[Exception] = None
            try:
                config = await self.load_config()
            except Exception as e:
                log.exception("sync_config_load_failed")
                config, config_error = SyncConfig(), e

            ceiling = self.watchdog_ceiling(config)
            try:
                handle.run_id = await self.ledger.start_run(
                    handle.trigger, stale_after=timedelta(seconds=ceiling)
                )
            except SyncAlreadyRunning as e:
                handle.run_id = e.run_id
                handle.skipped = True
                log.info("sync_run_skipped_already_running", run_id=e.run_id)
                return empty_summary()

            handle.started.set()
            log = log.bind(run_id=handle.run_id)
            log.info("sync_run_started")

            if config_error is not None:
                await self.ledger.finish_run(
                    handle.run_id,
                    RunOutcome(error_count=1, error_message=f"Could not load sync config: {config_error}"),
                )
                return empty_summary(errors=1)

            try:
                return await asyncio.wait_for(self._execute(handle, config, log), timeout=ceiling)
            except asyncio.TimeoutError:
                message = f"Watchdog: run exceeded {ceiling:.1f}s and was abandoned"
                log.error("sync_run_watchdog_expired", ceiling_seconds=ceiling, **handle.stats.as_dict())
                await self.ledger.fail_run(handle.run_id, message, self._partial_outcome(handle))
                return {**handle.stats.as_dict(), "errors": handle.stats.errors + 1}
            except asyncio.CancelledError:
                log.warning("sync_run_cancelled", **handle.stats.as_dict())
                await self.ledger.fail_run(
                    handle.run_id, "Run cancelled during shutdown", self._partial_outcome(handle)
                )
                raise
            except Exception as e:
                log.exception("sync_run_crashed")
                await self.ledger.fail_run(
                    handle.run_id, f"Unexpected error: {e}", self._partial_outcome(handle)
                )
                return {**handle.stats.as_dict(), "errors": handle.stats.errors + 1}
        finally:
            handle.started.set()
            if self._current is handle:
                self._current = None

    async def _fetch_all(
        self,
        config: SyncConfig,
        attorneys: List[MonitoredAttorney],
        start_date,
        end_date,
    ) -> List[AttorneyFetchResult]:
        """Fetch every attorney with bounded parallelism; results keep configured order"""
        semaphore = asyncio.Semaphore(self.max_concurrent_attorneys)

        async with self.client_factory(config) as client:
            async def fetch(attorney: MonitoredAttorney) -> AttorneyFetchResult:
                async with semaphore:
                    try:
                        return await client.fetch_disclosures(
                            attorney.name,
                            start_date,
                            end_date,
                            court=config.default_tribunal,
                            oab_number=attorney.oab_number,
                            oab_uf=attorney.oab_uf,
                        )
                    except Exception as e:
                        logger.exception("attorney_fetch_crashed", attorney=attorney.name)
                        return AttorneyFetchResult(attorney_name=attorney.name, error=f"{attorney.name}: {e}")

            return list(await asyncio.gather(*(fetch(a) for a in attorneys)))

    async def _execute(self, handle: SyncRunHandle, config: SyncConfig, log) -> Dict[str, int]:
        attorneys = config.monitored_attorneys()
        end_date = self.clock().date()
        start_date = end_date - timedelta(days=config.search_days_back)
        handle.date_range_start, handle.date_range_end = start_date, end_date
        stats = handle.stats

        if not attorneys:
            log.info("sync_run_no_attorneys")
        else:
            fetches = await self._fetch_all(config, attorneys, start_date, end_date)
            async with self.session_factory() as session:
                await ReconciliationService(CommunicationStore(session)).reconcile(fetches, stats=stats)

        await self._notify(stats)

        outcome = RunOutcome(
            items_found=stats.total,
            items_saved=stats.synced + stats.updated,
            error_count=stats.errors,
            error_message="; ".join(stats.error_messages[:MAX_REPORTED_ERRORS]) or None,
            date_range_start=start_date,
            date_range_end=end_date,
        )
        await self.ledger.finish_run(handle.run_id, outcome)
        log.info("sync_run_finished", status=status_for(outcome).value, **stats.as_dict())
        return stats.as_dict()

    async def _notify(self, stats: ReconciliationStats) -> None:
        for attorney, process_numbers in stats.new_by_attorney.items():
            signal = NewCommunicationsSignal(
                attorney_name=attorney,
                new_count=len(process_numbers),
                process_numbers=process_numbers,
            )
            try:
                await self.notifier.publish(signal)
            except Exception:
                logger.exception("notification_publish_failed", attorney=attorney)
