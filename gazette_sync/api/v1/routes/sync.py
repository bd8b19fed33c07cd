"""Sync trigger, status and history routes"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from gazette_sync.core.config import settings
from gazette_sync.db.models import SyncTrigger
from gazette_sync.db.session import get_db
from gazette_sync.api.deps import get_scheduler, get_sync_engine
from gazette_sync.api.v1.schemas.sync import (
    SyncRunListResponse, SyncRunResponse, SyncStatsResponse, SyncStatusResponse,
    SyncSummary, SyncTriggerResponse
)
from gazette_sync.services.config_service import ConfigService
from gazette_sync.services.scheduler import SyncScheduler
from gazette_sync.services.sync_engine import GazetteSyncEngine


router = APIRouter(prefix="/sync", tags=["Sync"])


@router.post("/run", response_model=SyncTriggerResponse)
async def run_sync(
    wait: bool = Query(False, description="Block until the run finishes and return its counters"),
    engine: GazetteSyncEngine = Depends(get_sync_engine),
):
    """
    Trigger a manual sync.

    If a run is already in flight the request joins it instead of starting
    another one. A run held by another process (e.g. the worker) is
    reported as skipped with that run's id.
    """
    coalesced = engine.is_running
    handle = engine.trigger(SyncTrigger.MANUAL)

    if wait:
        summary = await handle.wait()
        return SyncTriggerResponse(
            run_id=handle.run_id,
            coalesced=coalesced,
            skipped=handle.skipped,
            summary=SyncSummary(**summary),
        )

    run_id = await handle.wait_started()
    return SyncTriggerResponse(run_id=run_id, coalesced=coalesced, skipped=handle.skipped)


@router.get("/runs", response_model=SyncRunListResponse)
async def list_sync_runs(
    limit: int = Query(5, ge=1, le=settings.sync_history_limit),
    engine: GazetteSyncEngine = Depends(get_sync_engine),
):
    """Most recent sync runs, newest first"""
    runs = await engine.ledger.list_recent(limit)
    return SyncRunListResponse(
        runs=[SyncRunResponse.model_validate(run) for run in runs],
        total=len(runs),
    )


@router.get("/status", response_model=SyncStatusResponse)
async def sync_status(
    engine: GazetteSyncEngine = Depends(get_sync_engine),
    scheduler: Optional[SyncScheduler] = Depends(get_scheduler),
    db: AsyncSession = Depends(get_db),
):
    """Running flag, last run, history stats and next scheduled run"""
    config = await ConfigService(db).load_sync_config()
    stats = await engine.ledger.get_stats()
    last_run = stats.pop("last_sync")

    next_run_at = None
    if config.auto_sync:
        if scheduler is not None and scheduler.next_run_at is not None:
            next_run_at = scheduler.next_run_at
        else:
            next_run_at = await engine.ledger.estimate_next_run(config.sync_interval_hours)

    return SyncStatusResponse(
        running=engine.is_running or await engine.ledger.get_active_run() is not None,
        auto_sync=config.auto_sync,
        last_run=SyncRunResponse.model_validate(last_run) if last_run else None,
        next_run_at=next_run_at,
        stats=SyncStatsResponse(**stats),
    )
