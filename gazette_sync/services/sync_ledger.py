"""Durable audit trail of sync runs"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from gazette_sync.db.models import SyncRun, SyncRunStatus, SyncTrigger, utcnow

logger = logging.getLogger(__name__)

MAX_ERROR_MESSAGE_LENGTH = 4000


class SyncAlreadyRunning(Exception):
    """Raised when another process already holds the running row"""

    def __init__(self, run_id: Optional[int]):
        super().__init__(f"Sync run {run_id} is already running")
        self.run_id = run_id


@dataclass
class RunOutcome:
    """Counters written when a run is finalized"""
    items_found: int = 0
    items_saved: int = 0
    error_count: int = 0
    error_message: Optional[str] = None
    date_range_start: Optional[date] = None
    date_range_end: Optional[date] = None


def status_for(outcome: RunOutcome) -> SyncRunStatus:
    """success without errors, partial when something was still saved, else failed"""
    if outcome.error_count == 0:
        return SyncRunStatus.SUCCESS
    if outcome.items_saved > 0:
        return SyncRunStatus.PARTIAL
    return SyncRunStatus.FAILED


class SyncLedger:
    """
    Writes and reads SyncRun rows.

    Every write is best-effort: a failure is logged and swallowed so that
    losing an audit row never aborts a run that already saved data. Each
    call uses its own session, independent of the reconciliation session.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.clock = clock

    async def start_run(self, trigger: SyncTrigger, stale_after: Optional[timedelta] = None) -> Optional[int]:
        """
        Insert a running row and return its id (None if the write failed).

        The partial unique index on status admits one running row, so two
        processes racing here cannot both win: the loser gets
        SyncAlreadyRunning carrying the winner's id. Rows older than
        stale_after are failed first so a dead process cannot block forever.
        """
        if stale_after is not None:
            await self.fail_stale_runs(stale_after)
        try:
            async with self.session_factory() as session:
                now = self.clock()
                run = SyncRun(
                    trigger=trigger,
                    status=SyncRunStatus.RUNNING,
                    started_at=now,
                    created_at=now,
                )
                session.add(run)
                await session.commit()
                return run.id
        except IntegrityError:
            active = await self.get_active_run()
            raise SyncAlreadyRunning(active.id if active else None)
        except Exception as e:
            logger.exception(f"Failed to record start of {trigger.value} sync run: {e}")
            return None

    async def _finalize(self, run_id: int, status: SyncRunStatus, values: Dict[str, Any]) -> bool:
        # Only a running row may move; a finalized row is immutable
        async with self.session_factory() as session:
            result = await session.execute(
                update(SyncRun)
                .where(SyncRun.id == run_id, SyncRun.status == SyncRunStatus.RUNNING)
                .values(status=status, finished_at=self.clock(), **values)
            )
            await session.commit()
            if not result.rowcount:
                logger.warning(f"Sync run {run_id} was already finalized, leaving it untouched")
                return False
            return True

    async def finish_run(self, run_id: Optional[int], outcome: RunOutcome) -> Optional[SyncRunStatus]:
        """Finalize a run from its counters. Returns the status written, if any."""
        status = status_for(outcome)
        if run_id is None:
            return None
        try:
            values = {
                "items_found": outcome.items_found,
                "items_saved": outcome.items_saved,
                "error_count": outcome.error_count,
                "error_message": outcome.error_message[:MAX_ERROR_MESSAGE_LENGTH] if outcome.error_message else None,
                "date_range_start": outcome.date_range_start,
                "date_range_end": outcome.date_range_end,
            }
            if await self._finalize(run_id, status, values):
                return status
        except Exception as e:
            logger.exception(f"Failed to finalize sync run {run_id}: {e}")
        return None

    async def fail_run(self, run_id: Optional[int], message: str, partial: Optional[RunOutcome] = None) -> bool:
        """Force a running row to failed (watchdog / shutdown / recovery), keeping any partial counters"""
        if run_id is None:
            return False
        partial = partial or RunOutcome()
        try:
            return await self._finalize(
                run_id,
                SyncRunStatus.FAILED,
                {
                    "items_found": partial.items_found,
                    "items_saved": partial.items_saved,
                    "error_count": partial.error_count + 1,
                    "error_message": message[:MAX_ERROR_MESSAGE_LENGTH],
                    "date_range_start": partial.date_range_start,
                    "date_range_end": partial.date_range_end,
                },
            )
        except Exception as e:
            logger.exception(f"Failed to mark sync run {run_id} as failed: {e}")
            return False

    async def fail_stale_runs(self, older_than: timedelta) -> int:
        """Fail every run still 'running' after older_than (e.g. its process died)"""
        threshold = self.clock() - older_than
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    update(SyncRun)
                    .where(SyncRun.status == SyncRunStatus.RUNNING, SyncRun.started_at < threshold)
                    .values(
                        status=SyncRunStatus.FAILED,
                        finished_at=self.clock(),
                        error_count=1,
                        error_message=f"Run exceeded watchdog ceiling of {int(older_than.total_seconds())}s",
                    )
                )
                await session.commit()
                recovered = result.rowcount or 0
        except Exception as e:
            logger.exception(f"Failed to recover stale sync runs: {e}")
            return 0

        if recovered:
            logger.warning(f"Marked {recovered} stale sync run(s) as failed")
        return recovered

    async def get_active_run(self) -> Optional[SyncRun]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(SyncRun)
                .where(SyncRun.status == SyncRunStatus.RUNNING)
                .order_by(SyncRun.created_at.desc(), SyncRun.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def get_run(self, run_id: int) -> Optional[SyncRun]:
        async with self.session_factory() as session:
            return await session.get(SyncRun, run_id)

    async def list_recent(self, limit: int = 5) -> List[SyncRun]:
        """Most recent runs, newest first"""
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(SyncRun)
                    .order_by(SyncRun.created_at.desc(), SyncRun.id.desc())
                    .limit(limit)
                )
                return list(result.scalars().all())
        except Exception as e:
            logger.exception(f"Failed to load sync history: {e}")
            return []

    async def get_stats(self) -> Dict[str, Any]:
        """Aggregate history numbers for the status screen"""
        async with self.session_factory() as session:
            result = await session.execute(
                select(SyncRun.status, func.count(), func.coalesce(func.sum(SyncRun.items_saved), 0))
                .group_by(SyncRun.status)
            )
            by_status = {status: (count, saved) for status, count, saved in result.all()}

        last = await self.list_recent(1)
        return {
            "total_syncs": sum(count for count, _ in by_status.values()),
            "successful_syncs": by_status.get(SyncRunStatus.SUCCESS, (0, 0))[0],
            "partial_syncs": by_status.get(SyncRunStatus.PARTIAL, (0, 0))[0],
            "failed_syncs": by_status.get(SyncRunStatus.FAILED, (0, 0))[0],
            "total_items_saved": int(sum(saved for _, saved in by_status.values())),
            "last_sync": last[0] if last else None,
        }

    async def estimate_next_run(self, interval_hours: float) -> Optional[datetime]:
        """Last run start + interval; None when nothing has run yet"""
        last = await self.list_recent(1)
        if not last:
            return None
        return last[0].started_at + timedelta(hours=interval_hours)
