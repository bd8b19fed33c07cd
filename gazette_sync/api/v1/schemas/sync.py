"""Sync run and sync settings schemas"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from gazette_sync.db.models import SyncRunStatus, SyncTrigger


class SyncRunResponse(BaseModel):
    """One row of the sync history"""
    id: int
    trigger: SyncTrigger
    status: SyncRunStatus
    started_at: datetime
    finished_at: Optional[datetime] = None
    items_found: int
    items_saved: int
    error_count: int
    error_message: Optional[str] = None
    date_range_start: Optional[date] = None
    date_range_end: Optional[date] = None
    created_at: datetime

    class Config:
        from_attributes = True


class SyncRunListResponse(BaseModel):
    """Recent sync runs, newest first"""
    runs: List[SyncRunResponse]
    total: int


class SyncSummary(BaseModel):
    """Counters returned by a finished run"""
    total: int
    synced: int
    updated: int
    errors: int


class SyncTriggerResponse(BaseModel):
    """Result of a manual trigger"""
    run_id: Optional[int] = None
    coalesced: bool = Field(
        False,
        description="True when the request joined a run that was already in flight"
    )
    skipped: bool = Field(
        False,
        description="True when another process was already syncing; run_id is that run"
    )
    summary: Optional[SyncSummary] = Field(
        None,
        description="Only present when the caller waited for the run to finish"
    )


class SyncStatsResponse(BaseModel):
    """Aggregate history numbers"""
    total_syncs: int
    successful_syncs: int
    partial_syncs: int
    failed_syncs: int
    total_items_saved: int


class SyncStatusResponse(BaseModel):
    """Current state of the sync subsystem"""
    running: bool
    auto_sync: bool
    last_run: Optional[SyncRunResponse] = None
    next_run_at: Optional[datetime] = None
    stats: SyncStatsResponse


class AttorneyEntrySchema(BaseModel):
    """Attorney with optional OAB registration"""
    name: str
    oab_number: Optional[str] = None
    oab_uf: Optional[str] = None


class SyncConfigSchema(BaseModel):
    """Sync policy as exposed over the API"""
    auto_sync: bool
    sync_interval_hours: float
    default_tribunal: str
    search_days_back: int
    api_timeout_seconds: float
    max_retries: int
    lawyers_to_monitor: List[Any] = Field(
        default_factory=list,
        description="Attorney names, or objects with name / oab_number / oab_uf"
    )


class SyncConfigUpdate(BaseModel):
    """Partial update of the sync policy; omitted fields keep their value"""
    auto_sync: Optional[bool] = None
    sync_interval_hours: Optional[float] = None
    default_tribunal: Optional[str] = None
    search_days_back: Optional[int] = None
    api_timeout_seconds: Optional[float] = None
    max_retries: Optional[int] = None
    lawyers_to_monitor: Optional[List[Any]] = None

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)
