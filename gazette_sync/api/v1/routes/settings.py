"""Sync settings routes"""
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from gazette_sync.db.session import get_db
from gazette_sync.api.v1.schemas.sync import SyncConfigSchema, SyncConfigUpdate
from gazette_sync.services.config_service import ConfigService


router = APIRouter(prefix="/settings", tags=["Settings"])


@router.get("/sync", response_model=SyncConfigSchema)
async def get_sync_settings(db: AsyncSession = Depends(get_db)):
    """Current sync policy (defaults when never saved)"""
    config = await ConfigService(db).load_sync_config()
    return SyncConfigSchema(**config.model_dump(mode="json"))


@router.put("/sync", response_model=SyncConfigSchema)
async def update_sync_settings(
    request: SyncConfigUpdate,
    updated_by: Optional[str] = Header(None, alias="X-Updated-By"),
    db: AsyncSession = Depends(get_db),
):
    """
    Update the sync policy.

    Takes effect on the next run or scheduler tick; nothing is restarted.
    """
    service = ConfigService(db)
    current = await service.load_sync_config()
    merged = {**current.model_dump(mode="json"), **request.changes()}

    try:
        config = await service.save_sync_config(merged, updated_by=updated_by)
    except ValidationError as e:
        raise HTTPException(
            status_code=422,
            detail=e.errors(include_url=False, include_context=False),
        )
    return SyncConfigSchema(**config.model_dump(mode="json"))
