"""Celery tasks for DJEN synchronization"""
import asyncio
from datetime import timedelta
from typing import Any, Dict, Optional

from celery.utils.log import get_task_logger
from sqlalchemy.ext.asyncio import async_sessionmaker

from gazette_sync.db.models import SyncTrigger
from gazette_sync.services.sync_engine import ClientFactory, GazetteSyncEngine, default_client_factory
from gazette_sync.services.sync_ledger import SyncLedger
from gazette_sync.worker.celery_app import celery_app
from gazette_sync.worker.db import worker_session_factory

logger = get_task_logger(__name__)


def run_async(coro):
    """Run async function in sync context"""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@celery_app.task(bind=True)
def run_gazette_sync(self, trigger: str = SyncTrigger.SCHEDULED.value):
    """
    Run one DJEN sync in the worker.

    The ledger admits a single running row across processes, so a run
    already in flight in the API or another worker makes this one skip.
    """
    return run_async(_run_gazette_sync_async(SyncTrigger(trigger)))


async def _run_gazette_sync_async(
    trigger: SyncTrigger,
    session_factory: Optional[async_sessionmaker] = None,
    client_factory: ClientFactory = default_client_factory,
) -> Dict[str, Any]:
    """Async implementation of run_gazette_sync"""
    if session_factory is None:
        async with worker_session_factory() as factory:
            return await _run_gazette_sync_async(trigger, factory, client_factory)

    engine = GazetteSyncEngine(session_factory, client_factory=client_factory)
    handle = engine.trigger(trigger)
    summary = await handle.wait()

    if handle.skipped:
        logger.info(f"Sync run {handle.run_id} already in progress, skipping {trigger.value} run")
        return {"skipped": True, "run_id": handle.run_id}

    logger.info(f"Gazette sync finished: {summary}")
    return {"skipped": False, **summary}


@celery_app.task
def recover_stale_sync_runs():
    """
    Periodic task: finalize runs stuck in 'running' past the watchdog ceiling.
    Covers processes that died mid-run and never wrote a final status.
    """
    return run_async(_recover_stale_sync_runs_async())


async def _recover_stale_sync_runs_async(
    session_factory: Optional[async_sessionmaker] = None,
) -> Dict[str, int]:
    """Async implementation of recover_stale_sync_runs"""
    if session_factory is None:
        async with worker_session_factory() as factory:
            return await _recover_stale_sync_runs_async(factory)

    engine = GazetteSyncEngine(session_factory)
    config = await engine.load_config()
    ceiling = timedelta(seconds=engine.watchdog_ceiling(config))

    recovered = await SyncLedger(session_factory).fail_stale_runs(ceiling)
    if recovered:
        logger.warning(f"Recovered {recovered} stale sync run(s)")
    return {"recovered": recovered}
