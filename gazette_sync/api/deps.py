"""API dependencies for the sync subsystem"""
from typing import Optional

from fastapi import HTTPException, Request

from gazette_sync.services.scheduler import SyncScheduler
from gazette_sync.services.sync_engine import GazetteSyncEngine


def get_sync_engine(request: Request) -> GazetteSyncEngine:
    """Engine built in the app lifespan"""
    engine = getattr(request.app.state, "sync_engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Sync engine is not initialized")
    return engine


def get_scheduler(request: Request) -> Optional[SyncScheduler]:
    """Scheduler, or None when scheduling is disabled"""
    return getattr(request.app.state, "scheduler", None)
